import logging

# region logging setup
def setup_logging(level=logging.INFO):
    """Configure the root logger for command line runs."""
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s"
    )
    return logging.getLogger(__name__)
# endregion

class Config:
    """Global configuration constants for derby results processing."""
    # Standard class vocabulary, in display order. Last entry is the finals tier.
    STANDARD_CLASS_NAMES = [
        "Lion",
        "Tiger",
        "Wolf",
        "Bear",
        "Webelos",
        "Arrow of Light",
        "Grand Finals",
    ]
    FINALS_CLASS = "Grand Finals"

    # Mapping target meaning "drop every row of this raw class"
    SKIP_CLASS = "__skip__"

    # Keyword families used to guess a standard class from a raw label.
    # Checked in order, so the finals family must come before the dens.
    CLASS_KEYWORDS = [
        ("Grand Finals", ["grand final", "grand finals", "finals"]),
        ("Arrow of Light", ["arrow of light", "aol"]),
        ("Webelos", ["webelos", "webelo"]),
        ("Lion", ["lion", "lions"]),
        ("Tiger", ["tiger", "tigers"]),
        ("Wolf", ["wolf", "wolves"]),
        ("Bear", ["bear", "bears"]),
    ]
    SKIP_KEYWORDS = ["sibling"]

    # Ranking defaults
    FINALS_FIELD_SIZE = 12
    EXCLUDE_FINALS_WINNERS = True
    NUM_FINALS_WINNERS = 3
    TROPHY_PLACES = 3

    # Averaging method -> RacerClassStats attribute
    AVG_METHODS = {
        "drop_slowest": "avg_except_slowest",
        "all_heats": "avg_time",
    }
    DEFAULT_AVG_METHOD = "drop_slowest"

    # Audit export column order
    EXPORT_COLUMNS = [
        "Year", "FirstName", "LastName", "CarNumber", "CarName", "Class", "OriginalClass",
        "RoundID", "Heat", "Lane", "Completed", "FinishTime", "FinishPlace",
        "FullName", "KidCarYear",
    ]

    # Cosmetic constants
    TROPHIES = ["¹", "²", "³"]
    REPORT_FOOTER = "Pinewood Derby Results"
