"""Central versioning and schema constants for the diamond crawler."""

__all__ = ["__version__", "CONFIG_SCHEMA_VERSION"]

#: Semantic version of this codebase (bump using SemVer).
__version__ = "0.2.0"

#: Configuration schema version (increment if breaking changes to config format).
#: v2 replaced the URL-crawl fields with the price-bisection fields.
CONFIG_SCHEMA_VERSION = 2
