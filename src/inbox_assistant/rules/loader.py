"""YAML rules file loading.

The rules file lists rules in priority order::

    rules:
      - id: newsletters
        name: Newsletters
        from: 'newsletter@example\\.com'
        actions:
          - type: ARCHIVE
      - id: invoices
        name: Invoices
        subject: "^Invoice"
        automate: false
        actions:
          - type: LABEL
            label: "{{ai}}"

An argument value of ``"{{ai}}"`` asks the AI to generate that argument.
"""

from __future__ import annotations

from pathlib import Path

import yaml  # type: ignore[import-untyped]

from inbox_assistant.domain.models import Rule


def load_rules(path: Path) -> list[Rule]:
    """Load and validate the ordered rule list from a YAML file.

    Args:
        path: Path to the rules file.

    Returns:
        The rules in file order.

    Raises:
        FileNotFoundError: If the rules file does not exist.
        ValueError: If two rules share an ``id``.
        pydantic.ValidationError: If a rule is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Rules file not found: {path}")

    with path.open() as f:
        config = yaml.safe_load(f) or {}

    rules = [Rule.model_validate(item) for item in config.get("rules", [])]

    seen: set[str] = set()
    for rule in rules:
        if rule.id in seen:
            raise ValueError(f"Duplicate rule id in {path}: {rule.id}")
        seen.add(rule.id)

    return rules
