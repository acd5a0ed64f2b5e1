"""Table names and orderings used by backup export and restore.

The hosted store enforces foreign keys between the critical tables, so the
restore orderings below are significant: deletes run children-first and
inserts run parents-first.
"""

# Snapshot schema version written on export and required on restore
BACKUP_VERSION = 1

# Bulk deletes need a filter clause; nothing has this id
NIL_UUID = "00000000-0000-0000-0000-000000000000"

# Export order, also the closed set of tables a snapshot must carry
BACKUP_TABLES: tuple[str, ...] = (
    "departamentos",
    "usuarios",
    "servicos",
    "empresas",
    "rets",
    "responsaveis",
    "documentos",
    "observacoes",
    "logs",
    "lixeira",
    "notificacoes",
)

# Critical tier: companies and everything hanging off them. Any error aborts.
CRITICAL_DELETE_ORDER: tuple[str, ...] = (
    "observacoes",
    "documentos",
    "responsaveis",
    "rets",
    "empresas",
    "servicos",
)
CRITICAL_INSERT_ORDER: tuple[str, ...] = tuple(reversed(CRITICAL_DELETE_ORDER))

# Secondary tier: access rules may forbid bulk overwrite. Errors are logged.
SECONDARY_DELETE_ORDER: tuple[str, ...] = ("notificacoes", "lixeira", "logs")
SECONDARY_INSERT_ORDER: tuple[str, ...] = (
    "departamentos",
    "usuarios",
    "logs",
    "lixeira",
    "notificacoes",
)

CRITICAL_TABLES = frozenset(CRITICAL_DELETE_ORDER)
SECONDARY_TABLES = frozenset(SECONDARY_INSERT_ORDER)

# Profile table written by user provisioning
USERS_TABLE = "usuarios"
AUDIT_LOG_TABLE = "logs"
