"""
Clip generation workflow package.

Module Structure:
- context.py: Per-job state (ProcessingContext)
- prompt.py: Ranking and analysis prompts
- data_processor.py: Decoding of model responses
- validators.py: Segment validation
- parallel.py: Bounded batch execution
- clip_processor.py: Clip rendering (RenderBatchController)
- processor.py: Main workflow orchestration (PipelineOrchestrator)

Import the submodules directly; this package does not re-export them.
"""
