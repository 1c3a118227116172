"""
Prompt construction for model-backed mapping.
"""
import json
from typing import List

from datamapper.db.catalog import TABLE_CATALOG
from datamapper.domain.mapping.models import FieldProfile
from datamapper.utils.serialization import _make_json_safe

PROMPT_SAMPLE_DOCUMENTS = 3

MAPPING_SYSTEM_PROMPT = (
    "You are a data transformation expert for business intelligence systems. "
    "Always respond with valid JSON only. Do not include any explanatory text "
    "outside the JSON structure."
)

OUTPUT_FORMAT_EXAMPLE = """{
  "tables": [
    {
      "table_name": "sales_order",
      "confidence": 0.92,
      "reasoning": "Contains order_date, total_amount and customer fields that match the sales order entity.",
      "field_mappings": [
        { "source_field": "Order Date", "target_field": "order_date", "confidence": 0.95, "transformation": "date_format" },
        { "source_field": "Customer Name", "target_field": "customer_id", "confidence": 0.85, "transformation": "id_generation" },
        { "source_field": "Total", "target_field": "total_amount", "confidence": 0.9, "transformation": "currency_format" }
      ],
      "relationships": [
        { "related_table": "customer", "relationship_type": "foreign_key", "key": "customer_id" }
      ]
    }
  ],
  "unmapped_fields": [
    { "field_name": "Note", "reason": "Free text not tied to analytics" }
  ]
}"""


def _schema_listing() -> str:
    return "\n".join(
        f"**{spec.name}**: {', '.join(spec.mappable_columns)}" for spec in TABLE_CATALOG.values()
    )


def _table_descriptions() -> str:
    return "\n".join(f"**{spec.name}:** {spec.description}" for spec in TABLE_CATALOG.values())


def _field_summary(profile: FieldProfile) -> str:
    lines: List[str] = []
    for info in profile.fields:
        line = f"- {info.name} ({info.inferred_type.value})"
        if info.category:
            line += f" [{info.category.replace('.', ':')}]"
        line += f": Example values: [{', '.join(info.sample_values)}]"
        if info.is_monetary:
            line += " [CASH_FLOW_RELATED]"
        lines.append(line)
    return "\n".join(lines)


def _sample_documents(profile: FieldProfile) -> str:
    blocks = []
    for index, document in enumerate(profile.sample_documents[:PROMPT_SAMPLE_DOCUMENTS], start=1):
        # Document identifiers are left out; they carry no mapping signal.
        body = json.dumps(_make_json_safe(document.to_plain()), indent=2, ensure_ascii=False)
        blocks.append(f"Sample {index}:\n{body}")
    return "\n\n".join(blocks)


def build_mapping_prompt(profile: FieldProfile) -> str:
    return f"""You are an expert in data modeling and schema normalization for small and medium business systems.

You are given:
1. A set of business records extracted from a document store (often imported from CSV files).
2. A unified relational schema (the target structure) for standardized business analytics.

Your job:
- Analyze the given fields and sample data.
- Identify which table(s) each field belongs to. A collection may map to more than one table.
- Suggest relationship keys (like supplier_id or product_id) when logical links are found.
- You can ONLY use column names from the schema below. Do not invent new column names.

---
### ALLOWED SCHEMA TABLES AND COLUMNS

{_schema_listing()}

**RULES:**
1. Only map to the columns listed above.
2. If a source field does not fit any existing column, list it under unmapped_fields.
3. 'business_id' is added automatically; never include it in mappings.
4. product_id is VARCHAR(100); every other *_id column is an INTEGER.
5. Allowed transformation values: none, date_format, currency_format, id_generation.

---
### Table Descriptions

{_table_descriptions()}

---
### Collection Under Analysis

Collection Name: {profile.collection}
Document Count: {profile.document_count}

### Field Summary:
{_field_summary(profile)}

### Sample Documents:
{_sample_documents(profile)}

---
### Output Format (STRICT JSON)

{OUTPUT_FORMAT_EXAMPLE}

Return ONLY the JSON object. Do not include explanatory text, markdown formatting, or code blocks."""
