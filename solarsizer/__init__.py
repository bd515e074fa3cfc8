from . import (
    canon,
    exceptions,
    types,
    utils,
    validate,
    normalize,
    parsers,
    ingest,
    solar,
    irradiance,
    generation,
    pricing,
    scenario,
    transform,
    summary,
)

__all__ = [
    "canon",
    "exceptions",
    "types",
    "utils",
    "validate",
    "normalize",
    "parsers",
    "ingest",
    "solar",
    "irradiance",
    "generation",
    "pricing",
    "scenario",
    "transform",
    "summary",
]
