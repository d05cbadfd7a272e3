import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    price: float
    duration: int  # months
    features: List[str] = field(default_factory=list)
    branch_id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Plan":
        features = row.get("features") or []
        # SQLite keeps the list as JSON text
        if isinstance(features, str):
            features = json.loads(features) if features.strip() else []
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            price=float(row.get("price") or 0),
            duration=int(row.get("duration") or 1),
            features=[str(f) for f in features],
            branch_id=row.get("branch_id"),
            user_id=row.get("user_id"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
