"""Workflow orchestration for split sessions.

A workflow is an ordered set of units with dependencies. The framework walks
the execution order cooperatively on asyncio: each unit is handed to an
external ``UnitExecutor`` and the surrounding state machine
(pending, running, paused, completed, failed, cancelled) is kept here.
Nothing in this package decides what a unit does; it only sequences,
supervises and retries opaque execution phases.
"""
