"""배경 이미지 생성 백그라운드 워커."""

from PySide6.QtCore import QObject, Signal

from storycanvas.services.providers import GenerationParams, ImageProvider, generate_backgrounds


class GenerateWorker(QObject):
    """QThread + moveToThread 패턴으로 provider 호출을 백그라운드 처리한다."""

    finished = Signal(object)  # GenerationResult
    error = Signal(str)

    def __init__(self, provider: ImageProvider, params: GenerationParams) -> None:
        super().__init__()
        self._provider = provider
        self._params = params
        self._cancelled = False

    def cancel(self) -> None:
        """작업 취소 플래그 설정 (진행 중인 HTTP 요청은 중단 불가)."""
        self._cancelled = True

    def run(self) -> None:
        try:
            result = generate_backgrounds(self._provider, self._params)
            if not self._cancelled:
                self.finished.emit(result)
        except Exception as e:
            if not self._cancelled:
                self.error.emit(str(e))
