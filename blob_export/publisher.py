"""Uploads run logs and results to the customer storage account."""

import logging

from .exceptions import PublishError
from .models import RunResult
from .reporter import LogArtifact, artifact_stem


class LogPublisher:
    """Persists run artifacts under the logs container of the destination."""

    def __init__(self, destination, container: str = "logs"):
        self.destination = destination
        self.container = container
        self.logger = logging.getLogger(__name__)

    def publish(self, artifact: LogArtifact, result: RunResult) -> bool:
        """
        Upload the log artifact and JSON result.

        Failures are logged as warnings and never raised; the transfer has
        already finished by the time its log is published.

        Returns:
            True if both artifacts were uploaded
        """
        try:
            self._upload(artifact, result)
        except PublishError as e:
            self.logger.warning(f"Could not publish run log '{artifact.name}': {e}")
            return False

        self.logger.info(
            f"Published run log to {self.destination.account_name}/{self.container}/{artifact.name}"
        )
        return True

    def _upload(self, artifact: LogArtifact, result: RunResult) -> None:
        result_name = f"{artifact_stem(result)}_result.json"
        try:
            self.destination.ensure_container(self.container)
            self.destination.upload_text(self.container, artifact.name, artifact.content)
            self.destination.upload_text(
                self.container, result_name, result.to_json(), content_type="application/json"
            )
        except Exception as e:
            raise PublishError(str(e) or type(e).__name__) from e
