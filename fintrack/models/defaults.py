"""
Seed data for a brand-new tracker.

Used when a coordinator starts without any snapshot (first run, or after a
forced logout cleared local state), and to fill in categories and tags when
a pulled document has none.
"""

from fintrack.models.records import Category, Snapshot, Tag, UserSettings


DEFAULT_CATEGORIES = [
    {"id": "cat_0", "code": "INGR", "name": "Ingresos", "color": "#4caf50", "icon": "trending_up", "isFixed": True},
    {"id": "cat_1", "code": "PROJ", "name": "Proyecto y Documentación", "color": "#795548", "icon": "description"},
    {"id": "cat_2", "code": "TERR", "name": "Terreno", "color": "#4caf50", "icon": "landscape"},
    {"id": "cat_3", "code": "CONS", "name": "Construcción", "color": "#ff9800", "icon": "construction"},
    {"id": "cat_4", "code": "MUDA", "name": "Mudanza", "color": "#9c27b0", "icon": "local_shipping"},
    {"id": "cat_5", "code": "SEGU", "name": "Seguridad", "color": "#607d8b", "icon": "security"},
    {"id": "cat_6", "code": "TECN", "name": "Tecnología", "color": "#2196f3", "icon": "devices"},
    {"id": "cat_7", "code": "MUEB", "name": "Muebles", "color": "#ff5722", "icon": "chair"},
    {"id": "cat_8", "code": "UTIL", "name": "Utensilios y herramientas", "color": "#ffeb3b", "icon": "handyman"},
    {"id": "cat_other", "code": "OTRO", "name": "Otros", "color": "#9e9e9e", "icon": "category"},
]

DEFAULT_TAGS = [
    {"id": "tag_1", "code": "IMP", "name": "Impuestos", "color": "#f44336"},
    {"id": "tag_2", "code": "DOC", "name": "Documentos", "color": "#3f51b5"},
    {"id": "tag_3", "code": "NOT", "name": "Notaría", "color": "#673ab7"},
]


def default_categories() -> list[Category]:
    return [Category.model_validate(c) for c in DEFAULT_CATEGORIES]


def default_tags() -> list[Tag]:
    return [Tag.model_validate(t) for t in DEFAULT_TAGS]


def default_snapshot() -> Snapshot:
    """A fresh snapshot holding the seed categories and tags."""
    return Snapshot(
        transactions=[],
        categories=default_categories(),
        tags=default_tags(),
        settings=UserSettings(initial_balance=0, dark_mode=False),
        todos=[],
    )


def with_default_lookups(snapshot: Snapshot) -> Snapshot:
    """
    `snapshot` with the seed categories and/or tags in place of an empty
    collection. Everything else is returned as it was pulled.
    """
    update = {}
    if not snapshot.categories:
        update["categories"] = default_categories()
    if not snapshot.tags:
        update["tags"] = default_tags()
    if not update:
        return snapshot
    return snapshot.model_copy(update=update)
