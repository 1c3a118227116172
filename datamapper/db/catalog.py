"""
Fixed relational catalog that tenant documents are mapped onto.

Column sets and SQL types mirror the merchandising schema in the relational
store. Every table is scoped by ``business_id`` (the tenant identifier).
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

TENANT_COLUMN = "business_id"


@dataclass(frozen=True)
class TableSpec:
    """Static description of one target table."""
    name: str
    columns: Dict[str, str]  # column_name: sql_type (ordered)
    description: str
    primary_key: Optional[str] = None
    required: Tuple[str, ...] = ()
    dedup_key: Tuple[str, ...] = ()
    foreign_keys: Dict[str, str] = field(default_factory=dict)  # column: referenced table

    @property
    def column_names(self) -> List[str]:
        return list(self.columns.keys())

    @property
    def mappable_columns(self) -> List[str]:
        """Columns a source field may be mapped to (tenant column is injected, never mapped)."""
        return [name for name in self.columns if name != TENANT_COLUMN]

    @property
    def required_columns(self) -> Tuple[str, ...]:
        """Tenant column plus the table-specific required columns."""
        return (TENANT_COLUMN,) + tuple(col for col in self.required if col != TENANT_COLUMN)

    def column_type(self, column: str) -> Optional[str]:
        return self.columns.get(column)


def _table(
    name: str,
    columns: List[Tuple[str, str]],
    description: str,
    *,
    primary_key: Optional[str] = None,
    required: Tuple[str, ...] = (),
    dedup_key: Tuple[str, ...] = (),
    foreign_keys: Optional[Dict[str, str]] = None,
) -> TableSpec:
    ordered = {TENANT_COLUMN: "UUID"}
    ordered.update(dict(columns))
    return TableSpec(
        name=name,
        columns=ordered,
        description=description,
        primary_key=primary_key,
        required=required,
        dedup_key=dedup_key,
        foreign_keys=foreign_keys or {},
    )


TABLE_CATALOG: Dict[str, TableSpec] = {
    spec.name: spec
    for spec in (
        _table(
            "product_category",
            [
                ("category_id", "INTEGER"),
                ("category_name", "VARCHAR(255)"),
                ("description", "TEXT"),
            ],
            "Defines high-level product groupings (e.g., Electronics, Groceries).",
            primary_key="category_id",
            required=("category_name",),
            dedup_key=("category_name",),
        ),
        _table(
            "product_brand",
            [
                ("brand_id", "INTEGER"),
                ("brand_name", "VARCHAR(255)"),
                ("description", "TEXT"),
                ("unit_price", "DECIMAL(10,2)"),
            ],
            "Represents product brands. Has unit_price for brand-level pricing.",
            primary_key="brand_id",
            required=("brand_name",),
            dedup_key=("brand_name",),
        ),
        _table(
            "supplier",
            [
                ("supplier_id", "INTEGER"),
                ("supplier_name", "VARCHAR(255)"),
                ("contact_person", "VARCHAR(255)"),
                ("email", "VARCHAR(255)"),
                ("phone", "VARCHAR(50)"),
                ("address", "TEXT"),
            ],
            "Vendor providing products.",
            primary_key="supplier_id",
            required=("supplier_id", "supplier_name"),
            dedup_key=("supplier_name", "email"),
        ),
        _table(
            "customer",
            [
                ("customer_id", "INTEGER"),
                ("customer_name", "VARCHAR(255)"),
                ("email", "VARCHAR(255)"),
                ("phone", "VARCHAR(50)"),
                ("billing_address", "TEXT"),
                ("shipping_address", "TEXT"),
                ("customer_type", "VARCHAR(100)"),
            ],
            "Buyer or client of the business.",
            primary_key="customer_id",
            required=("customer_id", "customer_name"),
            dedup_key=("customer_name", "email", "phone"),
        ),
        _table(
            "investor",
            [
                ("investor_id", "INTEGER"),
                ("investor_name", "VARCHAR(255)"),
                ("contact_person", "VARCHAR(255)"),
                ("email", "VARCHAR(255)"),
                ("phone", "VARCHAR(50)"),
                ("address", "TEXT"),
                ("initial_investment_date", "DATE"),
                ("investment_terms", "TEXT"),
                ("status", "VARCHAR(100)"),
            ],
            "Party investing in the company.",
            primary_key="investor_id",
            required=("investor_id", "investor_name"),
            dedup_key=("investor_name", "email"),
        ),
        _table(
            "investment",
            [
                ("investment_id", "INTEGER"),
                ("investor_id", "INTEGER"),
                ("investment_amount", "DECIMAL(15,2)"),
                ("investment_date", "DATE"),
            ],
            "Tracks monetary contributions from investors.",
            primary_key="investment_id",
            required=("investment_id", "investor_id"),
            dedup_key=("investor_id", "investment_date", "investment_amount"),
            foreign_keys={"investor_id": "investor"},
        ),
        _table(
            "investors_capital",
            [
                ("capital_id", "INTEGER"),
                ("investor_id", "INTEGER"),
                ("calculation_date", "DATE"),
                ("current_capital", "DECIMAL(15,2)"),
                ("total_invested", "DECIMAL(15,2)"),
                ("total_returned", "DECIMAL(15,2)"),
                ("net_capital", "DECIMAL(15,2)"),
                ("current_roi", "DECIMAL(10,4)"),
                ("profit_share_paid", "DECIMAL(15,2)"),
                ("last_profit_calculation_date", "DATE"),
                ("notes", "TEXT"),
            ],
            "Periodic financial record of investor capital and returns.",
            primary_key="capital_id",
            required=("capital_id", "investor_id"),
            dedup_key=("investor_id", "calculation_date"),
            foreign_keys={"investor_id": "investor"},
        ),
        _table(
            "product",
            [
                ("product_id", "VARCHAR(100)"),
                ("product_name", "VARCHAR(255)"),
                ("description", "TEXT"),
                ("category_id", "INTEGER"),
                ("brand_id", "INTEGER"),
                ("supplier_id", "INTEGER"),
                ("price", "DECIMAL(10,2)"),
                ("selling_price", "DECIMAL(10,2)"),
                ("status", "TEXT"),
                ("created_date", "TIMESTAMP"),
                ("expense", "DECIMAL(10,2)"),
                ("stored_location", "VARCHAR(255)"),
            ],
            "Specific item sold. Has 'price' (cost) and 'selling_price' (retail price), "
            "plus 'expense' for additional costs.",
            primary_key="product_id",
            required=("product_id", "product_name"),
            dedup_key=("product_name", "brand_id", "supplier_id"),
            foreign_keys={
                "category_id": "product_category",
                "brand_id": "product_brand",
                "supplier_id": "supplier",
            },
        ),
        _table(
            "purchase_order",
            [
                ("purchase_order_id", "INTEGER"),
                ("supplier_id", "INTEGER"),
                ("order_date", "TIMESTAMP"),
                ("delivery_date", "DATE"),
                ("status", "VARCHAR(100)"),
                ("total_amount", "DECIMAL(15,2)"),
                ("notes", "TEXT"),
            ],
            "Records business purchases from suppliers.",
            primary_key="purchase_order_id",
            required=("purchase_order_id",),
            dedup_key=("supplier_id", "order_date", "total_amount"),
            foreign_keys={"supplier_id": "supplier"},
        ),
        _table(
            "purchase_order_items",
            [
                ("purchase_order_id", "INTEGER"),
                ("product_brand_id", "INTEGER"),
                ("quantity_ordered", "INTEGER"),
                ("unit_cost", "DECIMAL(10,2)"),
                ("line_total", "DECIMAL(10,2)"),
            ],
            "Line items within a purchase order.",
            required=("purchase_order_id",),
            dedup_key=("purchase_order_id", "product_brand_id", "line_total"),
            foreign_keys={"purchase_order_id": "purchase_order", "product_brand_id": "product_brand"},
        ),
        _table(
            "sales_order",
            [
                ("sales_order_id", "INTEGER"),
                ("customer_id", "INTEGER"),
                ("order_date", "TIMESTAMP"),
                ("status", "VARCHAR(100)"),
                ("total_amount", "DECIMAL(15,2)"),
                ("shipping_address", "TEXT"),
                ("product_received_date", "TIMESTAMP"),
            ],
            "Customer sales transactions.",
            primary_key="sales_order_id",
            required=("sales_order_id",),
            dedup_key=("customer_id", "order_date", "total_amount"),
            foreign_keys={"customer_id": "customer"},
        ),
        _table(
            "sales_order_items",
            [
                ("sales_order_id", "INTEGER"),
                ("product_id", "VARCHAR(100)"),
                ("line_total", "DECIMAL(10,2)"),
            ],
            "Line items sold within a sales order.",
            required=("sales_order_id",),
            dedup_key=("sales_order_id", "product_id", "line_total"),
            foreign_keys={"sales_order_id": "sales_order", "product_id": "product"},
        ),
    )
}

# Children before parents so tenant data can be cleared without FK violations.
DELETE_ORDER: List[str] = [
    "sales_order_items",
    "purchase_order_items",
    "sales_order",
    "purchase_order",
    "product",
    "investment",
    "investors_capital",
    "customer",
    "supplier",
    "investor",
    "product_brand",
    "product_category",
]


def get_table_spec(table_name: str) -> Optional[TableSpec]:
    return TABLE_CATALOG.get(table_name)


def is_catalog_table(table_name: Optional[str]) -> bool:
    return bool(table_name) and table_name in TABLE_CATALOG


def list_catalog_tables() -> List[str]:
    return list(TABLE_CATALOG.keys())


def is_monetary_type(sql_type: Optional[str]) -> bool:
    if not sql_type:
        return False
    upper = sql_type.upper()
    return any(keyword in upper for keyword in ("DECIMAL", "NUMERIC", "FLOAT", "DOUBLE", "REAL"))


def is_temporal_type(sql_type: Optional[str]) -> bool:
    if not sql_type:
        return False
    upper = sql_type.upper()
    return "TIMESTAMP" in upper or "DATE" in upper


def is_integer_type(sql_type: Optional[str]) -> bool:
    return bool(sql_type) and "INT" in sql_type.upper()
