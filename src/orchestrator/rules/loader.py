"""Load rule tables from YAML.

The packaged ``default_rules.yaml`` is used unless an override path is
given (``rules_path`` in the config file). Loaded tables are cached per
path; call ``load_rules.cache_clear()`` after editing a file at runtime.
"""

import logging
from functools import lru_cache
from pathlib import Path

import yaml

from src.orchestrator.rules.schema import RuleSet

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = Path(__file__).with_name("default_rules.yaml")


@lru_cache(maxsize=8)
def load_rules(path: str | Path | None = None) -> RuleSet:
    """Load and validate a rule set.

    Args:
        path: YAML file with rule tables. Defaults to the packaged rules.

    Returns:
        Validated RuleSet.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        pydantic.ValidationError: If the file does not match the schema.
    """
    rules_path = Path(path) if path else DEFAULT_RULES_PATH
    if not rules_path.exists():
        raise FileNotFoundError(f"Rules file not found: {rules_path}")

    with open(rules_path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    rules = RuleSet(**raw)
    logger.info(
        "Loaded rule tables from %s (%d loop signals)",
        rules_path,
        len(rules.loop.signal_table),
    )
    return rules
