"""
Реестр прогонов импорта с отслеживанием прогресса
"""
import logging
from typing import Dict, Any, Optional, List
from datetime import datetime
from uuid import uuid4
from enum import Enum

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ExchangeRunRegistry:
    """Хранит состояние последних прогонов обмена (в памяти процесса)"""

    def __init__(self, max_logs: int = 100, max_runs: int = 200, max_age_hours: int = 24):
        self.runs: Dict[str, Dict[str, Any]] = {}
        self.max_logs = max_logs
        self.max_runs = max_runs
        self.max_age_hours = max_age_hours

    def create_run(self, exchange_type: str, filename: str, namespace: str) -> str:
        """Регистрация нового прогона; старые завершённые прогоны вытесняются"""
        self.cleanup_old_runs(self.max_age_hours)
        self._trim_finished_runs()
        run_id = str(uuid4())
        self.runs[run_id] = {
            "id": run_id,
            "type": exchange_type,
            "filename": filename,
            "namespace": namespace,
            "status": RunStatus.PENDING,
            "is_full": None,
            "elements": 0,
            "current_step": "Инициализация...",
            "logs": [],
            "stats": None,
            "error": None,
            "created_at": datetime.utcnow(),
            "started_at": None,
            "completed_at": None,
        }
        logger.info(f"Создан прогон импорта {run_id}: {exchange_type}/{filename} ({namespace})")
        return run_id

    def get_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        return self.runs.get(run_id)

    def list_runs(self) -> List[Dict[str, Any]]:
        """Прогоны, новые первыми"""
        return list(reversed(list(self.runs.values())))

    def start_run(self, run_id: str, is_full: bool):
        if run_id in self.runs:
            self.runs[run_id]["status"] = RunStatus.RUNNING
            self.runs[run_id]["is_full"] = is_full
            self.runs[run_id]["current_step"] = "Разбор файла"
            self.runs[run_id]["started_at"] = datetime.utcnow()

    def update_progress(self, run_id: str, elements: int, step: str, log: Optional[str] = None):
        """Обновление прогресса: число разобранных элементов XML"""
        if run_id in self.runs:
            self.runs[run_id]["elements"] = elements
            self.runs[run_id]["current_step"] = step
            if log:
                self.runs[run_id]["logs"].append({
                    "timestamp": datetime.utcnow().isoformat(),
                    "message": log
                })
                if len(self.runs[run_id]["logs"]) > self.max_logs:
                    self.runs[run_id]["logs"] = self.runs[run_id]["logs"][-self.max_logs:]

    def complete_run(self, run_id: str, stats: Dict[str, int]):
        if run_id in self.runs:
            self.runs[run_id]["status"] = RunStatus.COMPLETED
            self.runs[run_id]["current_step"] = "Завершено"
            self.runs[run_id]["stats"] = stats
            self.runs[run_id]["completed_at"] = datetime.utcnow()

    def fail_run(self, run_id: str, error: str):
        if run_id in self.runs:
            self.runs[run_id]["status"] = RunStatus.FAILED
            self.runs[run_id]["error"] = error
            self.runs[run_id]["current_step"] = f"Ошибка: {error}"
            self.runs[run_id]["completed_at"] = datetime.utcnow()

    def cleanup_old_runs(self, max_age_hours: int = 24) -> int:
        """Удаление завершённых прогонов старше max_age_hours"""
        cutoff = datetime.utcnow().timestamp() - (max_age_hours * 3600)
        to_remove = []
        for run_id, run in self.runs.items():
            if run["status"] in [RunStatus.COMPLETED, RunStatus.FAILED]:
                completed = run.get("completed_at")
                if completed and completed.timestamp() < cutoff:
                    to_remove.append(run_id)

        for run_id in to_remove:
            del self.runs[run_id]
            logger.info(f"Удалён старый прогон {run_id}")
        return len(to_remove)

    def _trim_finished_runs(self):
        """Не больше max_runs прогонов: удаляются самые ранние завершённые"""
        excess = len(self.runs) - self.max_runs + 1
        if excess <= 0:
            return
        finished = [
            run_id for run_id, run in self.runs.items()
            if run["status"] in [RunStatus.COMPLETED, RunStatus.FAILED]
        ]
        for run_id in finished[:excess]:
            del self.runs[run_id]
        logger.debug(f"Вытеснено прогонов из реестра: {min(excess, len(finished))}")


# Глобальный реестр прогонов
run_registry = ExchangeRunRegistry()
