"""Data structures for work sessions, daily aggregates and configuration.

Persisted records keep the camelCase field names of the stored JSON so that
existing daily and history rows load unchanged.
"""

from copy import deepcopy
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class WorkSession:
    start_time: datetime
    date: str
    end_time: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def to_dict(self) -> Dict[str, Any]:
        data = {'startTime': self.start_time.isoformat(), 'date': self.date}
        if self.end_time is not None:
            data['endTime'] = self.end_time.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkSession':
        end_time = data.get('endTime')
        return cls(
            start_time=datetime.fromisoformat(data['startTime']),
            date=data['date'],
            end_time=datetime.fromisoformat(end_time) if end_time else None,
        )


@dataclass(frozen=True)
class FinalizedResult:
    """Figures pinned when a session ends."""
    income: float
    worked_minutes: int


class WorkState(Enum):
    IDLE = 'idle'          # nothing started today, or reset
    WORKING = 'working'    # a session is open
    STOPPED = 'stopped'    # session ended, figures frozen


@dataclass
class DailyData:
    """Live or archived aggregate for one calendar day."""
    date: str
    sessions: List[WorkSession] = field(default_factory=list)
    total_worked_minutes: int = 0
    total_income: float = 0.0
    is_workday: bool = False

    def open_session(self) -> Optional[WorkSession]:
        for session in self.sessions:
            if session.is_open:
                return session
        return None

    def copy(self) -> 'DailyData':
        return deepcopy(self)

    def to_dict(self, finalized: Optional[FinalizedResult] = None) -> Dict[str, Any]:
        return {
            'date': self.date,
            'sessions': [s.to_dict() for s in self.sessions],
            'totalWorkedMinutes': self.total_worked_minutes,
            'totalIncome': self.total_income,
            'isWorkday': self.is_workday,
            '_finalIncome': finalized.income if finalized else None,
            '_finalWorkedMinutes': finalized.worked_minutes if finalized else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_workday: bool = False) -> 'DailyData':
        # Raises ValueError/TypeError unless the day key is YYYY-MM-DD
        datetime.strptime(data['date'], '%Y-%m-%d')

        sessions = []
        for raw in data.get('sessions') or []:
            # Skip rows a crash may have left without a start
            if not raw.get('startTime') or not raw.get('date'):
                continue
            sessions.append(WorkSession.from_dict(raw))

        is_workday = data.get('isWorkday')
        return cls(
            date=data['date'],
            sessions=sessions,
            total_worked_minutes=data.get('totalWorkedMinutes') or 0,
            total_income=data.get('totalIncome') or 0.0,
            is_workday=default_workday if is_workday is None else bool(is_workday),
        )


def finalized_from_dict(data: Dict[str, Any]) -> Optional[FinalizedResult]:
    """Read the frozen figures stored alongside a daily record."""
    income = data.get('_finalIncome')
    minutes = data.get('_finalWorkedMinutes')
    if income is None or minutes is None:
        return None
    return FinalizedResult(income=income, worked_minutes=minutes)


@dataclass
class Config:
    """Validated configuration snapshot."""
    monthly_income: float = 10000
    work_days: List[int] = field(default_factory=lambda: [1, 2, 3, 4, 5])
    auto_start_work: bool = False
    work_start_time: str = '09:00'
    work_end_time: str = '18:00'
    precision_level: int = 2
    overtime_enabled: bool = True
    overtime_rate: float = 1.5
    deduct_for_early_leave: bool = False
    auto_sync: bool = False
    sync_provider: str = 'local'
    sync_config: Dict[str, str] = field(default_factory=dict)
    update_frequency: str = 'auto'
    custom_update_frequency: int = 3000
    blur_income: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
