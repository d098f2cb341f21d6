import math
from decimal import Decimal

import pytest

from copytrade.core.services.batch_planner_service import BatchPlannerService


@pytest.fixture
def planner():
    return BatchPlannerService(Decimal("2.0"), Decimal("1000"), 50)


def test_small_total_is_one_batch(planner):
    plan = planner.plan(Decimal("500"), Decimal("100000"), 5)
    assert plan.batch_count == 1
    assert plan.users_per_batch == 5


def test_total_below_two_percent_is_one_batch(planner):
    plan = planner.plan(Decimal("1500"), Decimal("100000"), 15)
    assert plan.batch_count == 1


def test_batches_follow_liquidity(planner):
    # 2% of 100K = 2K per batch
    plan = planner.plan(Decimal("5000"), Decimal("100000"), 10)
    assert plan.max_batch_amount == Decimal("2000")
    assert plan.batch_count == math.ceil(5000 / 2000)
    assert plan.users_per_batch == 4
    assert plan.batch_amount <= plan.max_batch_amount


def test_users_per_batch_capped():
    planner = BatchPlannerService(Decimal("2.0"), Decimal("0"), 3)
    plan = planner.plan(Decimal("5000"), Decimal("100000"), 20)
    assert plan.users_per_batch == 3


def test_zero_users_rejected(planner):
    with pytest.raises(ValueError):
        planner.plan(Decimal("100"), Decimal("100000"), 0)


def test_split_keeps_order():
    groups = BatchPlannerService.split(list(range(10)), 4)
    assert groups == [[0, 1, 2, 3], [4, 5, 6, 7], [8, 9]]
