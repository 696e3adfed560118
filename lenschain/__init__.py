"""lenschain package.

Life-event pipelines: a free-text trigger is matched against registered
pipeline definitions and the matched chain of lens actions is executed
step by step, each step feeding the next.

Import the pieces directly where needed:
    from lenschain.pipelines import PipelineRegistry
    from lenschain.runtime import PipelineExecutor
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
