"""Condition evaluation for rule gating."""

from __future__ import annotations

import logging

from .context import EvaluationContext
from .models import ConditionSet
from .versions import satisfies

logger = logging.getLogger(__name__)


class ConditionEvaluator:
    """Decides whether a :class:`ConditionSet` holds for a context.

    Every clause present in a set must hold. Evaluation never raises: a
    malformed version constraint is logged and counts as not satisfied.
    """

    def evaluate(self, conditions: ConditionSet | None, context: EvaluationContext) -> bool:
        """Evaluate ``conditions``; absent conditions always pass."""
        if conditions is None:
            return True
        return self._evaluate_clauses(conditions, context) and self._evaluate_combinators(
            conditions,
            context,
        )

    def _evaluate_combinators(self, conditions: ConditionSet, context: EvaluationContext) -> bool:
        if conditions.all_of is not None and not all(
            self.evaluate(c, context) for c in conditions.all_of
        ):
            logger.debug("allOf condition not met")
            return False

        if conditions.any_of is not None and not any(
            self.evaluate(c, context) for c in conditions.any_of
        ):
            logger.debug("anyOf condition not met")
            return False

        if conditions.not_ is not None and self.evaluate(conditions.not_, context):
            logger.debug("not condition not met")
            return False

        return True

    def _evaluate_clauses(self, conditions: ConditionSet, context: EvaluationContext) -> bool:
        if conditions.generator_version is not None and not self.evaluate_version_constraint(
            conditions.generator_version,
            context.generator_version,
        ):
            logger.debug(
                "Version constraint not met: %s vs %s",
                conditions.generator_version,
                context.generator_version,
            )
            return False

        if conditions.template_contains is not None and not context.template_contains(
            conditions.template_contains,
        ):
            logger.debug("Template does not contain required pattern: %r", conditions.template_contains)
            return False

        if conditions.template_not_contains is not None and context.template_contains(
            conditions.template_not_contains,
        ):
            logger.debug("Template contains forbidden pattern: %r", conditions.template_not_contains)
            return False

        if conditions.template_contains_all is not None:
            for probe in conditions.template_contains_all:
                if not context.template_contains(probe):
                    logger.debug("Template is missing pattern from 'all' list: %r", probe)
                    return False

        if conditions.template_contains_any is not None and not any(
            context.template_contains(probe) for probe in conditions.template_contains_any
        ):
            logger.debug("Template contains none of: %r", conditions.template_contains_any)
            return False

        if conditions.has_feature is not None and not context.has_feature(conditions.has_feature):
            logger.debug("Template lacks feature: %s", conditions.has_feature)
            return False

        if conditions.has_all_features is not None:
            for feature in conditions.has_all_features:
                if not context.has_feature(feature):
                    logger.debug("Template lacks feature from 'all' list: %s", feature)
                    return False

        if conditions.has_any_features is not None and not any(
            context.has_feature(feature) for feature in conditions.has_any_features
        ):
            logger.debug("Template has none of the features: %s", conditions.has_any_features)
            return False

        if conditions.project_property is not None and not context.has_project_property(
            conditions.project_property,
        ):
            logger.debug("Project property condition not met: %s", conditions.project_property)
            return False

        if conditions.environment_variable is not None and not context.has_environment_variable(
            conditions.environment_variable,
        ):
            logger.debug("Environment variable condition not met: %s", conditions.environment_variable)
            return False

        if conditions.build_type is not None:
            build_type = context.project_property("buildType")
            if build_type is None:
                build_type = context.environment_variable("BUILD_TYPE")
            if conditions.build_type != build_type:
                logger.debug(
                    "Build type condition not met: expected %s, actual %s",
                    conditions.build_type,
                    build_type,
                )
                return False

        return True

    def evaluate_version_constraint(self, constraint: str, actual_version: str | None) -> bool:
        """Check ``actual_version`` against ``constraint``, failing closed."""
        try:
            return satisfies(actual_version, constraint)
        except ValueError as e:
            logger.warning(
                "Invalid version constraint '%s' for version '%s': %s",
                constraint,
                actual_version,
                e,
            )
            return False
