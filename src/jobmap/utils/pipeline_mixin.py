"""Pipeline execution mixin for multi-step jobs.

Runs a list of named steps in order, feeding each step the previous step's
output, and prints one colored status line per step.
"""

from __future__ import annotations

import logging
from typing import Iterable, Callable, Any
from abc import abstractmethod

from colorama import Fore, Style

logger = logging.getLogger(__name__)

Step = tuple[str, Callable[..., Any], dict[str, Any]]


class PipelineMixin:
    """Mixin for classes that process data through sequential steps.

    Usage:
        class MyImport(PipelineMixin):
            MODALITY = 'import'

            def _load_pipeline(self, rows):
                return [
                    ('Validate Rows', self.validate, {'rows': rows}),
                    ('Persist Rows', self.persist, {}),
                ]

            def run(self, rows):
                return self._execute_pipeline(rows=rows)
    """

    # Must be set by the class using this mixin
    MODALITY: str

    @abstractmethod
    def _load_pipeline(self, **kwargs: Any) -> Iterable[Step]:
        """Define the pipeline steps.

        Returns:
            List of tuples: (step_name, function, kwargs)
        """
        ...

    def _execute_pipeline(self, progress: bool = True, **pipeline_kwargs: Any) -> Any:
        """Execute the pipeline and return the final result.

        The first step is called with its kwargs only; every later step
        receives the previous result as its first argument.

        Args:
            progress: Whether to print progress lines (default: True)
            **pipeline_kwargs: Parameters passed to _load_pipeline()

        Returns:
            Result from the final pipeline step
        """
        pipeline = list(self._load_pipeline(**pipeline_kwargs))
        width = max((len(name) for name, _, _ in pipeline), default=0)
        result = None

        for i, (name, func, kwargs) in enumerate(pipeline):
            try:
                result = func(result, **kwargs) if i > 0 else func(**kwargs)
                if progress:
                    self._log_step_success(name, width)
            except Exception as e:
                self._log_step_failure(name, e, width)
                raise

        return result

    def _log_step_success(self, step_name: str, width: int) -> None:
        """Print success message for a pipeline step."""
        padding = width - len(step_name) + 4
        modality = getattr(self, 'MODALITY', 'Pipeline').title()
        print(f'{modality} -- {step_name} {"-" * padding}> {Fore.GREEN}Complete{Style.RESET_ALL}')

    def _log_step_failure(self, step_name: str, error: Exception, width: int) -> None:
        """Print failure message for a pipeline step."""
        padding = width - len(step_name) + 4
        modality = getattr(self, 'MODALITY', 'Pipeline').title()
        print(f'{modality} -- {step_name} {"-" * padding}> {Fore.RED}Failed{Style.RESET_ALL}: {error}')
        logger.error(f"{modality} step '{step_name}' failed: {error}")
