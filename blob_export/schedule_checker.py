"""Schedule checking logic for cron-based transfer runs."""

from datetime import datetime

from croniter import croniter


class ScheduleChecker:
    """Handles evaluation of the cron-based transfer schedule."""

    @staticmethod
    def should_run_today(schedule: str, current_time: datetime = None) -> bool:
        """
        Check if the transfer should run based on its cron schedule.

        Args:
            schedule: Cron schedule string
            current_time: Current time (defaults to now)

        Returns:
            True if the schedule fired between midnight and now, False otherwise
        """
        if current_time is None:
            current_time = datetime.now()

        schedule = schedule.strip()

        try:
            cron = croniter(schedule, current_time)
            # Previous occurrence at or before now
            prev_occurrence = cron.get_prev(datetime)
        except Exception as e:
            raise ValueError(f"Error evaluating schedule '{schedule}': {e}")

        today_start = current_time.replace(hour=0, minute=0, second=0, microsecond=0)
        return prev_occurrence >= today_start

    @staticmethod
    def next_run_time(schedule: str, current_time: datetime = None) -> datetime:
        """
        Get the next time the transfer is scheduled to run.

        Args:
            schedule: Cron schedule string
            current_time: Current time (defaults to now)

        Returns:
            Next scheduled run time
        """
        if current_time is None:
            current_time = datetime.now()

        schedule = schedule.strip()

        try:
            cron = croniter(schedule, current_time)
            return cron.get_next(datetime)
        except Exception as e:
            raise ValueError(f"Error calculating next run time for schedule '{schedule}': {e}")
