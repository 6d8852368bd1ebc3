"""
Query Template Catalog

Loads the YAML query template seeds shipped in config/query_templates/ and
upserts them into the template tables.
"""

from pathlib import Path
from typing import Dict, Any, List, Optional
import logging

import yaml
from pydantic import BaseModel, ValidationError as PydanticValidationError

from shopdata.config import settings
from shopdata.connectors.postgres_pool import PostgresConnectionPool
from shopdata.core.errors import TemplateNotFoundError, ValidationError
from shopdata.models import DatasetType, DependentTemplate, PredefinedTemplate

logger = logging.getLogger(__name__)

KINDS = (DatasetType.PREDEFINED.value, DatasetType.DEPENDENT.value)


class TemplateMetadata(BaseModel):
    """Metadata about a template seed file"""

    name: str
    description: str
    kind: str
    file_path: str


class TemplateCatalog:
    """
    Loads YAML query templates.

    Seeds live in <templates_dir>/predefined/*.yaml and
    <templates_dir>/dependent/*.yaml.
    """

    def __init__(self, templates_dir: Optional[Path] = None):
        if templates_dir is None:
            templates_dir = Path(settings.QUERY_TEMPLATES_DIR)
            if not templates_dir.is_absolute():
                base_dir = Path(__file__).resolve().parent.parent.parent
                templates_dir = base_dir / templates_dir

        self.templates_dir = Path(templates_dir)
        self._templates_cache: Dict[str, Dict[str, Any]] = {}

    def _kind_dir(self, kind: str) -> Path:
        if kind not in KINDS:
            raise ValidationError(f"Unknown template kind {kind!r}")
        return self.templates_dir / kind

    def list_templates(self, kind: Optional[str] = None) -> List[TemplateMetadata]:
        """
        List available template seeds.

        Files that cannot be parsed are logged and skipped.
        """
        templates = []

        for k in (kind,) if kind else KINDS:
            kind_dir = self._kind_dir(k)
            if not kind_dir.exists():
                continue
            for template_file in sorted(kind_dir.glob("*.yaml")):
                try:
                    with open(template_file, "r") as f:
                        data = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    logger.warning("Skipping template %s: %s", template_file, e)
                    continue

                templates.append(
                    TemplateMetadata(
                        name=data.get("name", template_file.stem),
                        description=data.get("description", ""),
                        kind=k,
                        file_path=str(template_file),
                    )
                )

        return templates

    def load_template(self, kind: str, template_name: str) -> Dict[str, Any]:
        """
        Load a raw template by file name (without .yaml extension).
        """
        cache_key = f"{kind}/{template_name}"
        if cache_key in self._templates_cache:
            return self._templates_cache[cache_key]

        template_file = self._kind_dir(kind) / f"{template_name}.yaml"

        if not template_file.exists():
            raise TemplateNotFoundError(template_name, kind)

        with open(template_file, "r") as f:
            data = yaml.safe_load(f) or {}

        self._templates_cache[cache_key] = data
        return data

    def to_predefined(self, data: Dict[str, Any]) -> PredefinedTemplate:
        try:
            return PredefinedTemplate(
                name=data["name"],
                description=data.get("description", ""),
                query_template=data["query"],
                resource_type=data.get("resource_type"),
                field_list=data.get("fields", []),
                result_processor=data.get("result_processor"),
            )
        except (KeyError, PydanticValidationError) as e:
            raise ValidationError(f"Invalid predefined template: {e}") from e

    def to_dependent(self, data: Dict[str, Any]) -> DependentTemplate:
        try:
            return DependentTemplate(
                name=data["name"],
                description=data.get("description", ""),
                primary_query=data["primary_query"],
                secondary_query=data["secondary_query"],
                id_path=data["id_path"],
                merge_strategy=data.get("merge_strategy", "reference"),
                primary_resource_type=data.get("primary_resource_type"),
            )
        except (KeyError, PydanticValidationError) as e:
            raise ValidationError(f"Invalid dependent template: {e}") from e

    def predefined_templates(self) -> List[PredefinedTemplate]:
        return [
            self.to_predefined(self.load_template("predefined", Path(m.file_path).stem))
            for m in self.list_templates("predefined")
        ]

    def dependent_templates(self) -> List[DependentTemplate]:
        return [
            self.to_dependent(self.load_template("dependent", Path(m.file_path).stem))
            for m in self.list_templates("dependent")
        ]


async def seed_templates(
    pool: PostgresConnectionPool, catalog: Optional["TemplateCatalog"] = None
) -> Dict[str, int]:
    """
    Upsert every seed by name.

    Returns:
        Count of upserted templates per kind
    """
    catalog = catalog or template_catalog
    predefined = catalog.predefined_templates()
    dependent = catalog.dependent_templates()

    async with pool.transaction() as conn:
        for t in predefined:
            await conn.execute(
                """
                INSERT INTO query_templates
                    (name, description, query_template, resource_type,
                     field_list, result_processor)
                VALUES ($1, $2, $3, $4, $5::jsonb, $6)
                ON CONFLICT (name) DO UPDATE SET
                    description = EXCLUDED.description,
                    query_template = EXCLUDED.query_template,
                    resource_type = EXCLUDED.resource_type,
                    field_list = EXCLUDED.field_list,
                    result_processor = EXCLUDED.result_processor,
                    updated_at = now()
                """,
                t.name,
                t.description,
                t.query_template,
                t.resource_type,
                t.field_list,
                t.result_processor,
            )
        for t in dependent:
            await conn.execute(
                """
                INSERT INTO dependent_query_templates
                    (name, description, primary_query, primary_resource_type,
                     secondary_query, id_path, merge_strategy)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (name) DO UPDATE SET
                    description = EXCLUDED.description,
                    primary_query = EXCLUDED.primary_query,
                    primary_resource_type = EXCLUDED.primary_resource_type,
                    secondary_query = EXCLUDED.secondary_query,
                    id_path = EXCLUDED.id_path,
                    merge_strategy = EXCLUDED.merge_strategy,
                    updated_at = now()
                """,
                t.name,
                t.description,
                t.primary_query,
                t.primary_resource_type,
                t.secondary_query,
                t.id_path,
                t.merge_strategy,
            )

    return {"predefined": len(predefined), "dependent": len(dependent)}


template_catalog = TemplateCatalog()
