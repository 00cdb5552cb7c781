"""Export of step outputs to the Bitrise environment via envman."""

import subprocess

from xamarin_android_uitest.utils.logging import get_logger

logger = get_logger(__name__)

RESULT_KEY = "BITRISE_XAMARIN_TEST_RESULT"
FULL_RESULTS_KEY = "BITRISE_XAMARIN_TEST_FULL_RESULTS_TEXT"
EMULATOR_SERIAL_KEY = "ANDROID_EMULATOR_SERIAL"
APK_PATH_KEY = "ANDROID_APK_PATH"

RESULT_SUCCEEDED = "succeeded"
RESULT_FAILED = "failed"


class EnvmanExporter:
    """
    Exports key/value pairs for later workflow steps.

    Export failures are logged as warnings; they never change the
    step result.
    """

    def __init__(self, envman_path: str = "envman", timeout: int = 60):
        self.envman_path = envman_path
        self.timeout = timeout

    def export(self, key: str, value: str) -> bool:
        """
        Export an environment variable with `envman add`.

        Args:
            key: Variable name
            value: Variable value

        Returns:
            True if envman accepted the value
        """
        cmd = [self.envman_path, "add", "--key", key, "--value", value]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Failed to export environment: {key}, error: {e}")
            return False

        if result.returncode != 0:
            error_msg = (result.stderr or result.stdout or "unknown error").strip()
            logger.warning(f"Failed to export environment: {key}, error: {error_msg[:300]}")
            return False

        logger.debug(f"Exported {key}")
        return True
