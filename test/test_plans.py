"""
Tests for the plan access matrix
"""

import pytest

from orgtree.exceptions import PlanNotFoundError
from orgtree.permissions_config.plans import ALL_MODULES, PLAN_ACCESS_MATRIX, get_plan_access, plan_max_users


class TestPlanAccess:
    @pytest.mark.parametrize("plan_id", ["free", "starter", "professional", "enterprise"])
    def test_every_plan_is_well_formed(self, plan_id):
        plan = get_plan_access(plan_id)

        # Every granted application has a module list or the wildcard
        assert set(plan["modules"]) == set(plan["applications"])
        for modules in plan["modules"].values():
            assert modules == ALL_MODULES or (isinstance(modules, list) and modules)

    def test_unknown_plan(self):
        with pytest.raises(PlanNotFoundError):
            get_plan_access("platinum")

    def test_custom_matrix(self):
        matrix = {"solo": {"applications": ["crm"], "modules": {"crm": ["leads"]}, "limitations": {"users": 1}}}

        assert get_plan_access("solo", matrix)["applications"] == ["crm"]
        with pytest.raises(PlanNotFoundError):
            get_plan_access("free", matrix)

    def test_max_users(self):
        assert plan_max_users(PLAN_ACCESS_MATRIX["free"]) == 2
        assert plan_max_users(PLAN_ACCESS_MATRIX["enterprise"]) is None
        assert plan_max_users({}) is None
