from .base import Base
from .asset import Asset, BusinessService, ServiceAsset
from .risk import Risk, RiskAsset, RiskService, RiskControl
from .framework import ComplianceFramework, ComplianceControl
from .mapping import RiskControlMapping, MappingPattern

__all__ = [
    "Base",
    "Asset", "BusinessService", "ServiceAsset",
    "Risk", "RiskAsset", "RiskService", "RiskControl",
    "ComplianceFramework", "ComplianceControl",
    "RiskControlMapping", "MappingPattern",
]
