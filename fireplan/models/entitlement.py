from typing import Optional
from pydantic import BaseModel


class Capabilities(BaseModel):
    exportEnabled: bool = False
    unlimitedScenarios: bool = False
    scenarioCompare: bool = False
    advancedAnalytics: bool = False
    aiInsights: bool = False


class Entitlements(BaseModel):
    isAuthenticated: bool = True
    isPro: bool = False
    scenarioLimit: Optional[int] = None  # None = unlimited
    capabilities: Capabilities = Capabilities()

    def has(self, capability: str) -> bool:
        return bool(getattr(self.capabilities, capability, False))
