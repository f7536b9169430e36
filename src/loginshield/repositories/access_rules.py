"""Access rule repository - admin CRUD, ordered loading and trigger counters."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from loginshield.common.constants import StorageConstants
from loginshield.common.exceptions import ConfigurationError, ValidationError
from loginshield.core.types import RuleKind, RuleScope
from loginshield.data.schemas.access_rule import AccessRule, parse_access_rule
from loginshield.data.schemas.common import utc_now
from loginshield.repositories.base import Repository, to_document

logger = logging.getLogger(__name__)

# Evaluation order: priority descending, then creation time ascending.
# The store's stable sort keeps insertion order for exact ties.
RULE_ORDER = [("priority", -1), ("created_at", 1)]

_IMMUTABLE_FIELDS = ("id", "created_at", "stats", "created_by")


class AccessRuleRepository(Repository[AccessRule]):
    """Persistence for access rules."""

    collection = "access_rules"

    def _validate(self, document: Dict[str, Any]) -> AccessRule:
        return parse_access_rule(document)

    async def create(self, rule: Union[AccessRule, Dict[str, Any]]) -> AccessRule:
        """Validate and insert a new rule.

        Raises:
            ValidationError: If the raw rule does not validate
        """
        if isinstance(rule, dict):
            try:
                rule = parse_access_rule(rule)
            except PydanticValidationError as e:
                raise ValidationError(
                    "Invalid access rule",
                    details={"errors": e.errors(include_url=False)},
                ) from e
        document = await self._store.insert_one(self.collection, to_document(rule))
        logger.info(
            "Access rule created",
            extra={"rule_id": rule.id, "kind": rule.kind, "priority": rule.priority},
        )
        return self._validate(document)

    async def update(
        self,
        rule_id: str,
        changes: Dict[str, Any],
        updated_by: Optional[str] = None,
    ) -> AccessRule:
        """Apply admin edits. Counters and identity are not editable here.

        Raises:
            RecordNotFoundError: If the rule does not exist
            ValidationError: If the edited rule does not validate
        """
        current = await self.require(rule_id)
        merged = to_document(current)
        merged.update({k: v for k, v in changes.items() if k not in _IMMUTABLE_FIELDS})
        if updated_by is not None:
            merged["updated_by"] = updated_by
        try:
            validated = parse_access_rule(merged)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid access rule update",
                details={"rule_id": rule_id, "errors": e.errors(include_url=False)},
            ) from e

        fields = {
            k: v for k, v in to_document(validated).items()
            if k not in _IMMUTABLE_FIELDS
        }
        return await self._update_by_id(rule_id, {"$set": fields})

    async def set_active(self, rule_id: str, active: bool, updated_by: Optional[str] = None) -> AccessRule:
        return await self._update_by_id(rule_id, {"$set": {"active": active, "updated_by": updated_by}})

    async def delete(self, rule_id: str) -> bool:
        deleted = await self._store.delete_many(self.collection, {"id": rule_id})
        if deleted:
            logger.info("Access rule deleted", extra={"rule_id": rule_id})
        return deleted > 0

    async def list_rules(
        self,
        scope: Optional[RuleScope] = None,
        kind: Optional[RuleKind] = None,
        active_only: bool = False,
    ) -> List[AccessRule]:
        query: Dict[str, Any] = {}
        if active_only:
            query["active"] = True
        if scope is not None:
            query["scope"] = scope
        if kind is not None:
            query["kind"] = kind
        return self._parse_many(await self._store.find(self.collection, query, sort=RULE_ORDER))

    async def get_active_rules(
        self,
        scope: Optional[RuleScope] = None,
        kind: Optional[RuleKind] = None,
    ) -> List[AccessRule]:
        """Active rules in evaluation order."""
        return await self.list_rules(scope=scope, kind=kind, active_only=True)

    async def record_trigger(
        self,
        rule_id: str,
        allowed: bool,
        now: Optional[datetime] = None,
    ) -> None:
        """Atomically bump a rule's trigger counters.

        ``allowed`` False counts a denial, anything else a success.
        """
        counter = "stats.success_count" if allowed else "stats.denied_count"
        await self._store.increment(
            self.collection,
            {"id": rule_id},
            {"stats.total_triggered": 1, counter: 1},
            set_fields={"stats.last_triggered": now or utc_now()},
        )

    async def statistics(self) -> Dict[str, Any]:
        """Totals, counts by kind and scope, and the most triggered rules."""
        total = await self._store.count_documents(self.collection)
        active = await self._store.count_documents(self.collection, {"active": True})
        by_kind = await self._store.group_count(self.collection, "kind")
        by_scope = await self._store.group_count(self.collection, "scope")
        top = await self._store.find(
            self.collection,
            sort=[("stats.total_triggered", -1)],
            limit=StorageConstants.STATISTICS_TOP_N,
        )
        return {
            "total": total,
            "active": active,
            "inactive": total - active,
            "by_kind": [{"kind": k, "count": c} for k, c in by_kind.items()],
            "by_scope": [{"scope": s, "count": c} for s, c in by_scope.items()],
            "most_triggered": [
                {
                    "id": doc["id"],
                    "name": doc["name"],
                    "kind": doc["kind"],
                    "stats": doc["stats"],
                }
                for doc in top
            ],
        }

    async def load_from_yaml(self, rules_file: Union[str, Path], created_by: str = "system") -> int:
        """Seed rules from a YAML file with a top-level ``rules`` list.

        Rules are keyed by name; a name already present is left untouched.

        Returns:
            Number of rules created

        Raises:
            FileNotFoundError: If the file does not exist
            ConfigurationError: If the file is not valid YAML or a rule fails validation
        """
        path = Path(rules_file)
        if not path.exists():
            raise FileNotFoundError(f"Rules file not found: {path}")

        try:
            with open(path, "r") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Rules file is not valid YAML: {path}",
                details={"error": str(e)},
            ) from e

        created = 0
        for index, raw_rule in enumerate(raw.get("rules", [])):
            raw_rule = {"created_by": created_by, **raw_rule}
            try:
                rule = parse_access_rule(raw_rule)
            except PydanticValidationError as e:
                raise ConfigurationError(
                    f"Rule #{index} in {path} failed validation",
                    details={"errors": e.errors(include_url=False)},
                ) from e

            previous = await self._store.find_one_and_update(
                self.collection,
                {"name": rule.name},
                {"$setOnInsert": to_document(rule)},
                upsert=True,
                return_new=False,
            )
            if previous is None:
                created += 1

        logger.info("Access rules seeded", extra={"file": str(path), "rules_created": created})
        return created
