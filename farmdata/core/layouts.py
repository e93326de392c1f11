"""
Declarative per-table layout data

Display column order, quick-filter fields and default sort per table. These
are consumed by the record workspace as data; no table gets its own code path.
"""

from typing import Dict, List, Optional

# Default sort for list views
TABLE_SORT_OVERRIDES: Dict[str, Dict[str, str]] = {
    "broiler_batches": {"sort_by": "batch_id", "sort_dir": "DESC"},
    "layer_flocks": {"sort_by": "flock_id", "sort_dir": "DESC"},
    "pig_groups": {"sort_by": "group_id", "sort_dir": "DESC"},
    "crop_batches": {"sort_by": "batch_id", "sort_dir": "DESC"},
    "aquaculture_ponds": {"sort_by": "pond_id", "sort_dir": "DESC"},
    "items": {"sort_by": "item_id", "sort_dir": "DESC"},
    "finance_transactions": {"sort_by": "transaction_id", "sort_dir": "DESC"},
    "employees": {"sort_by": "employee_id", "sort_dir": "DESC"},
}

# Preferred display order; filtered to the fields the schema actually has
TABLE_COLUMN_OVERRIDES: Dict[str, List[str]] = {
    "broiler_batches": ["batch_code", "start_date", "initial_count", "current_count", "buy_price_per_bird", "status"],
    "broiler_daily_logs": ["log_date", "batch_id", "avg_weight_kg", "feed_kg", "mortality_count", "temperature_c"],
    "broiler_feed_logs": ["feed_date", "batch_id", "feed_name", "quantity_kg", "unit_cost", "total_cost"],
    "broiler_vaccinations": ["vaccine_name", "batch_id", "scheduled_date", "status", "administered_at"],
    "broiler_harvests": ["harvest_date", "batch_id", "birds_harvested", "total_weight_kg", "buyer_name", "total_amount"],
    "broiler_projections": ["created_at", "batch_id", "mode", "price_basis", "estimated_revenue", "cost_of_production", "estimated_profit"],
    "layer_flocks": ["flock_code", "start_date", "bird_count", "active_birds", "today_eggs", "status"],
    "layer_daily_logs": ["log_date", "flock_id", "egg_count", "mortality_count", "feed_kg", "status"],
    "layer_sales": ["sale_date", "flock_id", "quantity", "unit_price", "total_amount", "customer_name"],
    "pig_groups": ["group_code", "stage", "count_heads", "remaining_heads", "status", "created_at"],
    "pig_growth_logs": ["log_date", "group_id", "avg_weight_kg", "feed_kg", "mortality_count", "created_at"],
    "pig_breeding_records": ["event_date", "group_id", "record_type", "sow_tag", "boar_tag", "status"],
    "pig_animals": ["tag_no", "group_id", "sex", "breed", "birth_date", "status"],
    "pig_sales": ["sale_date", "group_id", "heads_sold", "avg_weight_kg", "total_amount", "buyer_name"],
    "health_records": ["recorded_at", "module_key", "target_type", "target_id", "diagnosis", "treatment", "medication"],
    "crop_fields": ["field_code", "field_name", "crop_type", "area_ha", "soil_type", "status"],
    "crop_batches": ["batch_code", "field_id", "crop_name", "planting_date", "expected_harvest_date", "status"],
    "crop_operations": ["operation_date", "batch_id", "operation_type", "quantity", "unit", "total_cost"],
    "crop_harvests": ["harvest_date", "batch_id", "quantity_kg", "price_per_kg", "total_amount", "buyer_name"],
    "crop_projections": ["created_at", "batch_id", "projected_harvest_date", "projected_yield_kg", "expected_revenue", "running_cost", "expected_profit"],
    "aquaculture_ponds": ["pond_name", "species", "area", "depth_m", "capacity_count", "status"],
    "aquaculture_stockings": ["stocking_date", "pond_id", "species", "fingerling_count", "avg_weight_g", "density_per_m2"],
    "aquaculture_daily_logs": ["log_date", "pond_id", "feed_kg", "mortality_count", "temperature_c", "ph_level"],
    "aquaculture_sampling_logs": ["sample_date", "pond_id", "sample_count", "avg_weight_g", "biomass_kg", "survival_pct"],
    "aquaculture_harvests": ["harvest_date", "pond_id", "harvest_type", "fish_count", "total_weight_kg", "total_amount"],
    "items": ["item_type", "name", "unit", "stock_balance", "reorder_level", "is_active"],
    "inventory_feed_assignments": ["assignment_date", "item_id", "module_key", "target_label", "quantity", "total_cost"],
    "inventory_item_assignments": ["assignment_date", "item_id", "module_key", "target_label", "quantity", "total_cost"],
    "purchase_orders": ["po_number", "supplier_id", "order_date", "status", "total_amount", "created_at"],
    "stock_transactions": ["tx_date", "item_id", "tx_type", "quantity", "unit_cost", "reference"],
    "finance_transactions": ["transaction_date", "entry_type", "reference_type", "amount", "status", "created_at"],
    "chart_accounts": ["account_code", "account_name", "category", "account_type", "is_active"],
    "budgets": ["budget_name", "module_key", "budget_amount", "period_start", "period_end", "status"],
    "payroll_runs": ["period_start", "period_end", "status", "gross_pay", "net_pay", "created_at"],
    "sales_pos_orders": ["created_at", "invoice_id", "payment_method", "amount_paid", "change_due", "total"],
    "module_sales": ["sale_date", "module_key", "batch_reference", "quantity", "unit_price", "total_amount"],
    "invoices": ["invoice_number", "module_key", "customer_name", "status", "subtotal", "total"],
    "report_schedules": ["name", "schedule_type", "report_type", "is_active", "created_at"],
    "module_benchmarks": ["module_key", "metric_key", "target_value", "current_value", "created_at"],
    "audit_log": ["created_at", "action_key", "entity_name", "entity_id", "actor_user_id"],
    "employees": ["full_name", "employee_no", "role_title", "monthly_salary", "is_active"],
    "approval_requests": ["request_type", "request_title", "requested_by", "status", "requested_at"],
    "tasks": ["title", "module_key", "priority", "status", "due_date", "assigned_to"],
    "user_messages": ["created_at", "sender_user_id", "recipient_user_id", "subject", "is_read"],
    "user_notifications": ["created_at", "title", "status", "channel", "priority"],
}

# Fields offered as quick-filter facets
QUICK_FILTER_FIELDS_BY_TABLE: Dict[str, List[str]] = {
    "broiler_batches": ["status", "housing_id"],
    "broiler_daily_logs": ["batch_id"],
    "broiler_feed_logs": ["batch_id"],
    "broiler_vaccinations": ["batch_id", "status"],
    "broiler_harvests": ["batch_id"],
    "broiler_misc_costs": ["batch_id"],
    "layer_flocks": ["status", "production_phase"],
    "layer_daily_logs": ["flock_id"],
    "layer_sales": ["flock_id", "grade"],
    "pig_groups": ["status", "stage"],
    "pig_growth_logs": ["group_id"],
    "pig_breeding_records": ["group_id", "record_type", "status"],
    "pig_sales": ["group_id"],
    "crop_batches": ["status", "field_id", "crop_name"],
    "crop_operations": ["batch_id", "operation_type"],
    "crop_harvests": ["batch_id"],
    "aquaculture_ponds": ["status", "species"],
    "aquaculture_daily_logs": ["pond_id"],
    "aquaculture_sampling_logs": ["pond_id"],
    "aquaculture_harvests": ["pond_id", "harvest_type"],
    "items": ["item_type", "is_active"],
    "stock_transactions": ["item_id", "tx_type"],
    "purchase_orders": ["status"],
    "finance_transactions": ["status", "entry_type"],
    "sales_pos_orders": ["payment_method"],
    "module_sales": ["module_key"],
    "invoices": ["module_key", "status"],
    "employees": ["is_active"],
    "approval_requests": ["status"],
    "health_records": ["module_key", "target_type", "target_id"],
}

# Row columns shown in each module's performance report
REPORT_COLUMNS_BY_MODULE: Dict[str, List[str]] = {
    "BROILERS": ["batch_code", "start_date", "initial_count", "current_count", "fcr", "adg_g", "mortality_rate", "cost_of_production", "harvest_revenue", "profitability", "status"],
    "LAYERS": ["flock_code", "active_birds", "today_eggs", "hen_day_pct", "feed_per_dozen", "cracked_eggs", "sales_amount", "status"],
    "PIGS": ["group_code", "stage", "remaining_heads", "latest_weight_kg", "mortality_rate", "fcr", "sales_amount", "status"],
    "CROPS": ["batch_code", "crop_name", "planting_date", "expected_harvest_date", "actual_harvest_kg", "sales_amount", "status"],
    "AQUACULTURE": ["pond_name", "species", "stock_count", "avg_weight_g", "survival_pct", "feed_conversion_ratio", "status"],
    "INVENTORY": ["item_type", "name", "unit", "stock_balance", "reorder_level", "stock_value"],
    "FINANCE": ["transaction_date", "entry_type", "reference_type", "amount", "status"],
    "REPORTS": ["module_key", "metric_key", "target_value", "current_value", "created_at"],
    "HR_ACCESS": ["full_name", "role_title", "monthly_salary", "is_active"],
}


def preferred_columns(table: str) -> List[str]:
    return list(TABLE_COLUMN_OVERRIDES.get(table, []))


def quick_filter_candidates(table: str) -> List[str]:
    return list(QUICK_FILTER_FIELDS_BY_TABLE.get(table, []))


def report_columns(module_key: str) -> List[str]:
    return list(REPORT_COLUMNS_BY_MODULE.get(str(module_key).upper(), []))


def default_sort(table: str) -> Optional[Dict[str, str]]:
    override = TABLE_SORT_OVERRIDES.get(table)
    return dict(override) if override else None
