"""Command execution layer (resolution, execution, formatting, pipeline).

Public entry point: `src.commands.pipeline.CommandPipeline.process_transcript`.
"""
