"""Interface for presenting results to the user.

Defines the contract for displaying Graph results, errors, warnings and
resilience status, allowing different UI implementations.
"""

import abc
from typing import Any, Dict, List, Sequence


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_table(self, title: str, columns: Sequence[str], rows: List[Sequence[Any]]) -> None:
        """Displays tabular results (users, groups, messages).

        Args:
            title: Caption shown above the table.
            columns: Column headers.
            rows: One sequence of cell values per row.
        """
        pass

    @abc.abstractmethod
    def display_record(self, title: str, record: Dict[str, Any]) -> None:
        """Displays a single resource as key/value pairs."""
        pass

    @abc.abstractmethod
    def display_status(self, status: Dict[str, Any], show_counters: bool = True) -> None:
        """Displays the resilience settings, plus live counters when show_counters is set."""
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        pass
