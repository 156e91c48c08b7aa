from dental_budget.schemas.procedure import Procedure, parse_procedure
from dental_budget.schemas.odontogram import (
    CATEGORY_TO_STATUS,
    ChartCategory,
    Surface,
    ToothAnnotation,
    ToothStatus,
    annotation_to_wire,
    parse_annotation,
)
from dental_budget.schemas.budget import (
    BudgetCreate,
    BudgetItemIn,
    BudgetItemOut,
    BudgetItemStatusUpdate,
    BudgetOut,
    parse_budget,
)
