from PyQt6.QtCore import QThread, pyqtSignal

from i18n import _
from shape_solver import ShapeSolver, SolverProgress, SolverResult


class SolverThread(QThread):
    """도형 솔버를 백그라운드에서 수행하는 스레드.

    솔버의 worker 역할을 합니다 (is_cancelled, log, batch_done).
    """
    progress = pyqtSignal(int, int, int)  # depth, level_size, visited
    log_message = pyqtSignal(str)
    finished_with_result = pyqtSignal(object)  # SolverResult

    LOG_BUFFER_SIZE = 50

    def __init__(self, solver: ShapeSolver, log_enabled=False):
        super().__init__()
        self.solver = solver
        self.is_cancelled = False
        self.log_enabled = log_enabled
        self.log_buffer = []
        self.last_progress = None
        self.result = None

    def log(self, msg: str, verbose=False):
        if self.log_enabled:
            if verbose:
                msg = f"[VERBOSE] {msg}"
            self.log_buffer.append(msg)
            if len(self.log_buffer) >= self.LOG_BUFFER_SIZE:
                self._flush_log_buffer()

    def log_verbose(self, msg: str):
        self.log(msg, verbose=True)

    def _flush_log_buffer(self):
        if self.log_buffer:
            self.log_message.emit("\n".join(self.log_buffer))
            self.log_buffer.clear()

    def batch_done(self, progress: SolverProgress):
        # 배치 경계: 쌓인 로그를 내보내고 진행 상황을 알림
        self.last_progress = progress
        self._flush_log_buffer()
        self.progress.emit(progress.depth, progress.level_size, progress.visited_count)

    def run(self):
        try:
            self.log(_("log.solver.thread.start"))
            result: SolverResult = self.solver.solve(worker=self)
            self.result = result
            self.finished_with_result.emit(result)
        finally:
            self._flush_log_buffer()

    def cancel(self):
        self.is_cancelled = True
