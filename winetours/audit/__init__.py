"""Append-only audit log.

    from winetours.audit.api import log

    log(action="rate_table_update", obj=version, actor="ops@example.com",
        changes={"payload": {"old": old, "new": new}}, metadata={"reason": reason})
"""
