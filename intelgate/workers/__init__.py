from intelgate.workers.analysis_worker import AnalysisWorkerLoop
from intelgate.workers.housekeeping_worker import HousekeepingWorker

__all__ = ["AnalysisWorkerLoop", "HousekeepingWorker"]
