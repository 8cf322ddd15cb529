"""
Action library: the predefined action types (A01-A14) a journey can use.

The library is read when an action is created. Event type, completion mode,
supported products and guidance defaults are copied onto the Action; the
simulator never consults the library again at evaluation time.
"""

from typing import Dict, List, Optional

from .schemas import (
    Action,
    ActionLibraryItem,
    CompletionMode,
    NoDeadline,
    Product,
    Reminder,
    TimeRange,
)


class UnknownActionTypeError(KeyError):
    """Raised when an action type id is not in the library."""

    def __init__(self, action_type_id: str) -> None:
        self.action_type_id = action_type_id
        super().__init__(f"Unknown action type '{action_type_id}'")


_ALL_PRODUCTS = [
    Product.BMA,
    Product.FITHUB,
    Product.TRAINER_APP,
    Product.SMART_STRENGTH,
    Product.UNKNOWN,
]


def _item(
    item_id: str,
    title: str,
    event_type: str,
    completion_mode: CompletionMode,
    products: List[Product],
    supports_guidance: bool = False,
    default_guidance_enabled: bool = False,
) -> ActionLibraryItem:
    return ActionLibraryItem(
        id=item_id,
        title=title,
        event_type=event_type,
        completion_mode=completion_mode,
        supported_products=products,
        supports_guidance=supports_guidance,
        default_guidance_enabled=default_guidance_enabled,
    )


_OCC = CompletionMode.OCCURRENCE
_CNT = CompletionMode.COUNTER
P = Product

ACTION_LIBRARY: Dict[str, ActionLibraryItem] = {
    item.id: item
    for item in [
        _item("A01", "EGYM Account created", "EGYM_ACCOUNT_CREATED", _OCC, _ALL_PRODUCTS, True, True),
        _item("A02", "Check-In done", "CHECKIN_DONE", _OCC, [P.UNKNOWN]),
        _item("A03", "Strength test done", "STRENGTH_TEST_DONE", _CNT,
              [P.SMART_STRENGTH, P.TRAINER_APP, P.BMA], True),
        _item("A04", "Flexibility test done", "FLEXIBILITY_TEST_DONE", _CNT,
              [P.FITHUB, P.TRAINER_APP, P.BMA], True),
        _item("A05", "Training plan created", "TRAINING_PLAN_CREATED", _OCC,
              [P.BMA, P.TRAINER_APP], True, True),
        _item("A06", "Training plan expired", "TRAINING_PLAN_EXPIRED", _OCC, [P.BMA, P.TRAINER_APP]),
        _item("A07", "BioAge calculated", "BIOAGE_CALCULATED", _OCC,
              [P.FITHUB, P.BMA, P.TRAINER_APP], True),
        _item("A08", "Trial started", "TRIAL_STARTED", _OCC,
              [P.TRAINER_APP, P.SMART_STRENGTH, P.FITHUB, P.BMA]),
        _item("A09", "Trial ended", "TRIAL_ENDED", _OCC, [P.BMA, P.TRAINER_APP]),
        _item("A10", "RFID linked", "RFID_LINKED", _OCC,
              [P.FITHUB, P.TRAINER_APP, P.BMA, P.SMART_STRENGTH], True, True),
        _item("A11", "NFC created", "NFC_CREATED", _OCC, [P.BMA, P.TRAINER_APP], True),
        _item("A12", "Fitness Goals defined", "FITNESS_GOALS_DEFINED", _OCC,
              [P.BMA, P.FITHUB, P.TRAINER_APP], True, True),
        _item("A13", "Workout tracked", "WORKOUT_TRACKED", _CNT,
              [P.SMART_STRENGTH, P.BMA, P.TRAINER_APP]),
        _item("A14", "Machine settings created", "MACHINE_SETTINGS_CREATED", _OCC,
              [P.FITHUB, P.TRAINER_APP], True, True),
    ]
}

CATEGORIES = ("Onboarding", "Assessments", "Training Plan", "Other")

ACTION_CATEGORIES: Dict[str, str] = {
    "A01": "Onboarding",
    "A10": "Onboarding",
    "A11": "Onboarding",
    "A14": "Onboarding",
    "A03": "Assessments",
    "A04": "Assessments",
    "A07": "Assessments",
    "A12": "Training Plan",
    "A05": "Training Plan",
    "A06": "Training Plan",
    "A13": "Training Plan",
    "A02": "Other",
    "A08": "Other",
    "A09": "Other",
}

PRODUCT_LABELS: Dict[Product, str] = {
    Product.BMA: "Member App",
    Product.FITHUB: "Fitness Hub",
    Product.TRAINER_APP: "Trainer App",
    Product.SMART_STRENGTH: "Smart Strength",
    Product.UNKNOWN: "Unknown",
}


def get_action_library_item(action_type_id: str) -> Optional[ActionLibraryItem]:
    return ACTION_LIBRARY.get(action_type_id)


def get_all_action_library_items() -> List[ActionLibraryItem]:
    return list(ACTION_LIBRARY.values())


def get_action_library_items_by_product(product: Product) -> List[ActionLibraryItem]:
    """Return library items that can be configured for ``product``."""
    return [item for item in ACTION_LIBRARY.values() if product in item.supported_products]


def get_action_category(action_type_id: str) -> str:
    return ACTION_CATEGORIES.get(action_type_id, "Other")


def get_actions_by_category() -> Dict[str, List[ActionLibraryItem]]:
    grouped: Dict[str, List[ActionLibraryItem]] = {category: [] for category in CATEGORIES}
    for item in ACTION_LIBRARY.values():
        grouped[get_action_category(item.id)].append(item)
    return grouped


def get_product_label(product: Product) -> str:
    return PRODUCT_LABELS.get(product, product.value)


def build_action(
    action_type_id: str,
    product: Optional[Product] = None,
    *,
    required_count: Optional[int] = None,
    time_range: Optional[TimeRange] = None,
    reminders: Optional[List[Reminder]] = None,
    visible_in_checklist: bool = True,
    guidance_enabled: Optional[bool] = None,
    action_id: Optional[str] = None,
) -> Action:
    """Create an Action from a library item.

    COUNTER items default to ``required_count=1`` when none is given. The
    product defaults to the item's first supported product.

    Raises:
        UnknownActionTypeError: If ``action_type_id`` is not in the library
        ValueError: If the item does not support ``product``
    """
    item = ACTION_LIBRARY.get(action_type_id)
    if item is None:
        raise UnknownActionTypeError(action_type_id)

    product = product or item.supported_products[0]
    if product not in item.supported_products:
        raise ValueError(
            f"Action type {item.id} ({item.title}) does not support product {product.value}"
        )

    if item.completion_mode == CompletionMode.COUNTER:
        required_count = required_count or 1
    else:
        required_count = None

    if guidance_enabled is None:
        guidance_enabled = item.default_guidance_enabled

    fields = dict(
        action_type_id=item.id,
        title=item.title,
        event_type=item.event_type,
        completion_mode=item.completion_mode,
        required_count=required_count,
        product=product,
        supported_products=list(item.supported_products),
        visible_in_checklist=visible_in_checklist,
        supports_guidance=item.supports_guidance,
        guidance_enabled=guidance_enabled and item.supports_guidance,
        time_range=time_range or NoDeadline(),
        reminders=list(reminders or []),
    )
    if action_id:
        fields["id"] = action_id
    return Action(**fields)
