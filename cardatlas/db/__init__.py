from cardatlas.db.database import async_session_factory, dispose_db, get_session, init_db
from cardatlas.db.operations import (
    add_search_event,
    card_to_record,
    create_card,
    create_card_set,
    create_card_type,
    create_rarity,
    delete_card,
    get_card,
    get_search_events_since,
    search_event_to_model,
    update_card,
)

__all__ = [
    "add_search_event",
    "async_session_factory",
    "card_to_record",
    "create_card",
    "create_card_set",
    "create_card_type",
    "create_rarity",
    "delete_card",
    "dispose_db",
    "get_card",
    "get_search_events_since",
    "get_session",
    "init_db",
    "search_event_to_model",
    "update_card",
]
