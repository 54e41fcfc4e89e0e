"""Seed script: creates the default validation rule rows.

Idempotent: existing rule rows (possibly tuned by an admin) are never overwritten.
Run: python scripts/seed_validation_rules.py
"""
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from procurement.db.session import SessionLocal  # noqa: E402
from procurement.validation.admin import DEFAULT_RULES, seed_default_rules  # noqa: E402


def seed() -> None:
    print("Seeding validation rules...")
    with SessionLocal() as db:
        added = set(seed_default_rules(db))
    for rule in DEFAULT_RULES:
        tag = "[new] " if rule["rule_type"] in added else "[skip]"
        print(f"  {tag} {rule['rule_type']} ({rule['severity']}) {rule['config'] or ''}")
    print(f"Done: {len(added)} added, {len(DEFAULT_RULES) - len(added)} already present.")


if __name__ == "__main__":
    seed()
