from pydantic import BaseModel, Field


class Holding(BaseModel):
    id: str
    name: str = ""
    current_value: float = Field(ge=0.0)
    target_allocation: float = Field(ge=0.0, le=100.0)


class AllocationResult(BaseModel):
    holding_id: str
    holding_name: str = ""
    current_value: float
    target_allocation: float
    current_allocation: float
    amount_to_invest: float = Field(ge=0.0)
    new_value: float
    new_allocation: float


class FinalAllocation(BaseModel):
    holding_id: str
    name: str = ""
    current: float
    target: float


class ConvergenceResult(BaseModel):
    months: int
    reachable: bool
    final_allocations: list[FinalAllocation] = []


class TargetValidation(BaseModel):
    is_valid: bool
    total: float
    message: str | None = None


class PortfolioSummary(BaseModel):
    total_value: float
    holdings_count: int
    allocation_valid: bool
    allocation_total: float
