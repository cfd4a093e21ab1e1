from .workflow import IsoBootWorkflow, WorkflowServices, run_workflow


__all__ = ["IsoBootWorkflow", "WorkflowServices", "run_workflow"]
