def init_db(bind=None):
    """Create every table on `bind` (defaults to the configured engine)."""
    from assistant.models import Base

    if bind is None:
        from assistant.db import engine
        bind = engine
    Base.metadata.create_all(bind=bind)
