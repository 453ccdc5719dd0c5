"""
套餐推荐模型
"""

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Recommendation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_id: str = Field(serialization_alias="planId")
    plan_name: str = Field(serialization_alias="planName")
    reasoning: str
    potential_savings: float = Field(default=0.0, serialization_alias="potentialSavings")
    benefits: list[str] = Field(default_factory=list)

    @computed_field(alias="costImplication")
    @property
    def cost_implication(self) -> str:
        if self.potential_savings > 0:
            return f"Save ${self.potential_savings:.2f}/month"
        if self.potential_savings < 0:
            return f"Additional ${abs(self.potential_savings):.2f}/month"
        return "Similar cost"


class RecommendationCandidate(BaseModel):
    """模型返回的推荐候选项（数值字段不被信任）"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    plan_id: str | None = Field(default=None, alias="planId")
    plan_name: str | None = Field(default=None, alias="planName")
    reasoning: str = ""
    benefits: list[str] = Field(default_factory=list)
