from collections import namedtuple
from datetime import timedelta

from coinhost.errors import ValidationError


Plan = namedtuple('Plan', ['price', 'duration_hours', 'label'])

DEFAULT_PLANS = (
    Plan(price=10, duration_hours=24, label='24 Hours'),
    Plan(price=50, duration_hours=120, label='5 Days'),
    Plan(price=100, duration_hours=168, label='7 Days'),
    Plan(price=300, duration_hours=None, label='Unlimited'),
)


def select_plan(plans, plan_index) -> Plan:
    """Return the plan at ``plan_index`` or raise a field-level ValidationError."""
    if isinstance(plan_index, bool):
        raise ValidationError('Invalid plan selected', field='plan_index')
    if isinstance(plan_index, int):
        idx = plan_index
    elif isinstance(plan_index, str) and plan_index.strip().isdigit():
        idx = int(plan_index.strip())
    else:
        raise ValidationError('Invalid plan selected', field='plan_index')
    if idx < 0 or idx >= len(plans):
        raise ValidationError('Invalid plan selected', field='plan_index')
    return plans[idx]


def plan_expiry(plan: Plan, now):
    if plan.duration_hours is None:
        return None
    return now + timedelta(hours=plan.duration_hours)


def plan_to_dict(plan: Plan, index: int) -> dict:
    return {
        'index': index,
        'coins': plan.price,
        'duration': plan.duration_hours,
        'label': plan.label,
    }
