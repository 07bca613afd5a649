"""Workflow execution engine."""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional, Union

from ..config import WorkflowSettings
from ..constants import AVERAGE_STEP_DURATION_MS, ORCHESTRATOR_AGENT_ID
from ..contracts import (
    AgentMessage,
    EventPriority,
    MessageType,
    TaskRequest,
    utcnow,
)
from ..dispatch import CapabilityRegistry, dispatch_step
from ..errors import (
    AgentricError,
    HandlerNotFoundError,
    InvalidStateTransitionError,
    UnknownTaskTypeError,
    WorkflowNotFoundError,
)
from ..events import EventEmitter
from ..process import ProcessManager, ProcessStatus, SpawnConfig
from ..transports import BaseTransport
from .graph import DependencyGraph, build_dependency_graph, execution_order
from .models import (
    RecoveryAction,
    StepExecution,
    StepStatus,
    Workflow,
    WorkflowExecution,
    WorkflowStatus,
    WorkflowStatusReport,
    WorkflowStep,
)
from .recovery import decide_recovery
from .templates import TemplateRegistry

logger = logging.getLogger(__name__)


class WorkflowOrchestrator:
    """Instantiates workflows from templates and drives them to completion.

    Steps run strictly one at a time in dependency order. Each step is sent to
    the handler registered for its capability and awaited within the step's
    timeout. Failures go through :func:`decide_recovery`.

    Every call to :meth:`execute_workflow` is tagged with a run token. A pause,
    a cancel or a newer execute invalidates the token, and the result of any
    dispatch still in flight under the old token is discarded.
    """

    def __init__(
        self,
        templates: Optional[TemplateRegistry] = None,
        capabilities: Optional[CapabilityRegistry] = None,
        events: Optional[EventEmitter] = None,
        process_manager: Optional[ProcessManager] = None,
        repository: Optional[Any] = None,
        transport: Optional[BaseTransport] = None,
        settings: Optional[WorkflowSettings] = None,
        agent_id: str = ORCHESTRATOR_AGENT_ID,
    ) -> None:
        self.agent_id = agent_id
        self.templates = templates if templates is not None else TemplateRegistry.with_defaults()
        self.capabilities = capabilities if capabilities is not None else CapabilityRegistry()
        self.events = events if events is not None else EventEmitter(transport)
        self.process_manager = process_manager
        self.repository = repository
        self.transport = transport
        self.settings = settings or WorkflowSettings()

        self._workflows: Dict[str, Workflow] = {}
        self._graphs: Dict[str, DependencyGraph] = {}
        self._history: Dict[str, List[WorkflowExecution]] = {}
        self._runs: Dict[str, int] = {}
        self._run_ids = itertools.count(1)
        self._pids: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    async def create_workflow(
        self, template_name: str, parameters: Optional[Dict[str, Any]] = None
    ) -> str:
        """Instantiate ``template_name`` and return the new workflow id.

        Raises:
            TemplateNotFoundError: no template is registered under that name.
            UnknownDependencyError: a step depends on a step that does not exist.
        """
        workflow = self.templates.instantiate(
            template_name,
            parameters,
            default_timeout_ms=self.settings.default_step_timeout_ms,
        )
        graph = build_dependency_graph(workflow.steps)

        self._workflows[workflow.id] = workflow
        self._graphs[workflow.id] = graph
        self._history[workflow.id] = []
        logger.info(
            f"Created workflow {workflow.id} from template {template_name} "
            f"({len(workflow.steps)} steps, priority={workflow.priority.value})"
        )

        await self._emit(
            "workflow_created",
            workflow,
            templateName=template_name,
            stepCount=len(workflow.steps),
        )
        await self._persist(workflow)
        return workflow.id

    async def execute_workflow(self, workflow_id: str) -> WorkflowExecution:
        """Run every outstanding step of ``workflow_id`` in dependency order.

        Legal from ``created`` and ``paused``. Steps completed by an earlier
        run are not dispatched again. Step failures and engine errors end up
        in the returned execution record rather than being raised.

        Raises:
            WorkflowNotFoundError: unknown ``workflow_id``.
            InvalidStateTransitionError: the workflow is running or terminal.
            CircularDependencyError: the steps form a cycle; nothing is
                dispatched and the workflow keeps its status.
        """
        workflow = self._require(workflow_id)
        if workflow.status not in (WorkflowStatus.CREATED, WorkflowStatus.PAUSED):
            raise InvalidStateTransitionError(
                "execute", workflow.status.value, f"workflow {workflow_id}"
            )

        graph = self._graphs.get(workflow_id)
        if graph is None:
            graph = self._graphs[workflow_id] = build_dependency_graph(workflow.steps)
        order = execution_order(graph)

        run = next(self._run_ids)
        self._runs[workflow_id] = run
        execution = WorkflowExecution(
            workflow_id=workflow.id, workflow_name=workflow.name, order=order
        )
        self._history.setdefault(workflow_id, []).append(execution)

        previous = workflow.status
        workflow.status = WorkflowStatus.RUNNING
        logger.info(f"Executing workflow {workflow_id} (run {run}): {' -> '.join(order)}")

        try:
            await self._attach_process(workflow, previous, run)
            for step_id in order:
                if not self._is_current(workflow, run):
                    break
                step = workflow.get_step(step_id)
                if step.status is StepStatus.COMPLETED:
                    logger.debug(f"Step {step_id} already completed, skipping")
                    continue

                unmet = self._unmet_dependencies(workflow, step)
                if unmet:
                    self._block_step(step, unmet, execution)
                    continue

                if not await self._run_step(workflow, step, execution, run):
                    break

            if self._is_current(workflow, run):
                await self._finish(workflow, execution, WorkflowStatus.COMPLETED)
        except Exception as e:
            logger.exception(f"Workflow {workflow_id} execution failed")
            execution.errors.append(str(e))
            if self._runs.get(workflow_id) == run and not workflow.status.is_terminal:
                await self._finish(workflow, execution, WorkflowStatus.FAILED, reason=str(e))

        if execution.ended_at is None:
            execution.finish(workflow.status)
        await self._persist(workflow, execution)
        return execution

    async def pause_workflow(self, workflow_id: str) -> None:
        """Stop dispatching; in-progress steps go back to pending."""
        workflow = self._require(workflow_id)
        if workflow.status is not WorkflowStatus.RUNNING:
            raise InvalidStateTransitionError(
                "pause", workflow.status.value, f"workflow {workflow_id}"
            )

        workflow.status = WorkflowStatus.PAUSED
        for step in workflow.steps_with_status(StepStatus.IN_PROGRESS):
            step.status = StepStatus.PENDING
        self._close_execution(workflow_id, WorkflowStatus.PAUSED)
        logger.info(f"Paused workflow {workflow_id}")

        pid = self._pids.get(workflow_id)
        if pid is not None and self._process_status(pid) is ProcessStatus.RUNNING:
            await self.process_manager.pause(pid)

        await self._emit("workflow_paused", workflow)
        await self._persist(workflow)

    async def resume_workflow(self, workflow_id: str) -> WorkflowExecution:
        workflow = self._require(workflow_id)
        if workflow.status is not WorkflowStatus.PAUSED:
            raise InvalidStateTransitionError(
                "resume", workflow.status.value, f"workflow {workflow_id}"
            )
        logger.info(f"Resuming workflow {workflow_id}")
        return await self.execute_workflow(workflow_id)

    async def cancel_workflow(self, workflow_id: str) -> None:
        """Fail the workflow and release everything it holds."""
        workflow = self._require(workflow_id)
        if workflow.status.is_terminal:
            raise InvalidStateTransitionError(
                "cancel", workflow.status.value, f"workflow {workflow_id}"
            )

        self._runs.pop(workflow_id, None)
        for step in workflow.steps:
            if step.status in (StepStatus.PENDING, StepStatus.IN_PROGRESS):
                step.status = StepStatus.FAILED
                step.error = "Workflow cancelled"
        workflow.status = WorkflowStatus.FAILED
        workflow.completed_at = utcnow()
        self._close_execution(workflow_id, WorkflowStatus.FAILED)
        self._graphs.pop(workflow_id, None)
        logger.info(f"Cancelled workflow {workflow_id}")

        await self._release_process(workflow)
        await self._emit("workflow_cancelled", workflow)
        await self._persist(workflow)

    def cleanup_workflow(self, workflow_id: str) -> None:
        """Forget a finished workflow. Its execution history is kept."""
        workflow = self._require(workflow_id)
        if not workflow.status.is_terminal:
            raise InvalidStateTransitionError(
                "clean up", workflow.status.value, f"workflow {workflow_id}"
            )
        del self._workflows[workflow_id]
        self._graphs.pop(workflow_id, None)
        self._runs.pop(workflow_id, None)
        self._pids.pop(workflow_id, None)
        logger.debug(f"Removed workflow {workflow_id} from the active set")

    async def record_step_result(
        self, workflow_id: str, step_id: str, result: Any = None
    ) -> bool:
        """Apply a step result reported by an agent outside of dispatch."""
        workflow = self._require(workflow_id)
        step = workflow.get_step(step_id)
        if step is None:
            logger.warning(f"Result reported for unknown step {step_id} of {workflow_id}")
            return False
        if workflow.status.is_terminal:
            logger.warning(
                f"Ignoring result for step {step_id}: workflow {workflow_id} is "
                f"{workflow.status.value}"
            )
            return False

        step.status = StepStatus.COMPLETED
        step.output_data = result
        step.error = None
        self._heartbeat(workflow)
        await self._persist(workflow)
        return True

    # ------------------------------------------------------------------
    # Queries
    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        return self._workflows.get(workflow_id)

    def list_workflows(self, status: Optional[WorkflowStatus] = None) -> List[Workflow]:
        workflows = list(self._workflows.values())
        if status is not None:
            workflows = [w for w in workflows if w.status == status]
        return workflows

    def get_workflow_status(self, workflow_id: str) -> WorkflowStatusReport:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            return WorkflowStatusReport.not_found(workflow_id)

        total = len(workflow.steps)
        completed = len(workflow.steps_with_status(StepStatus.COMPLETED))
        pending = len(workflow.steps_with_status(StepStatus.PENDING))
        current = next(iter(workflow.steps_with_status(StepStatus.IN_PROGRESS)), None)
        return WorkflowStatusReport(
            workflow_id=workflow_id,
            status=workflow.status.value,
            progress=(completed / total) * 100 if total else 0.0,
            completed_steps=completed,
            total_steps=total,
            current_step=current.action if current else None,
            estimated_time_remaining_ms=pending * AVERAGE_STEP_DURATION_MS,
        )

    def get_execution_order(self, workflow_id: str) -> List[str]:
        workflow = self._require(workflow_id)
        graph = self._graphs.get(workflow_id) or build_dependency_graph(workflow.steps)
        return execution_order(graph)

    def get_execution_history(self, workflow_id: str) -> List[WorkflowExecution]:
        return list(self._history.get(workflow_id, []))

    # ------------------------------------------------------------------
    # Inbound contracts
    async def process_task(self, task: Union[TaskRequest, Dict[str, Any]]) -> Any:
        if not isinstance(task, TaskRequest):
            task = TaskRequest.model_validate(task)
        data = task.data

        if task.type == "create_workflow":
            return await self.create_workflow(data["template"], data.get("parameters"))
        if task.type == "execute_workflow":
            return await self.execute_workflow(data["workflowId"])
        if task.type == "pause_workflow":
            return await self.pause_workflow(data["workflowId"])
        if task.type == "resume_workflow":
            return await self.resume_workflow(data["workflowId"])
        if task.type == "cancel_workflow":
            return await self.cancel_workflow(data["workflowId"])
        if task.type == "get_workflow_status":
            return self.get_workflow_status(data["workflowId"])
        raise UnknownTaskTypeError(task.type)

    async def handle_message(self, message: AgentMessage) -> Optional[AgentMessage]:
        """Serve workflow requests from other agents.

        The reply is returned and, when a transport is configured, published
        on the requester's topic.
        """
        data = message.data
        if message.type == MessageType.WORKFLOW_CREATE_REQUEST:
            workflow_id = await self.create_workflow(
                data["templateName"], data.get("parameters")
            )
            reply = message.reply(
                MessageType.WORKFLOW_CREATED.value, {"workflowId": workflow_id}
            )
        elif message.type == MessageType.WORKFLOW_EXECUTE_REQUEST:
            execution = await self.execute_workflow(data["workflowId"])
            reply = message.reply(
                MessageType.WORKFLOW_EXECUTION_COMPLETE.value,
                {"execution": execution.model_dump(mode="json")},
            )
        elif message.type == MessageType.WORKFLOW_STATUS_REQUEST:
            report = self.get_workflow_status(data["workflowId"])
            reply = message.reply(
                MessageType.WORKFLOW_STATUS_RESPONSE.value,
                {"status": report.model_dump(mode="json")},
            )
        elif message.type == MessageType.WORKFLOW_STEP_COMPLETE:
            await self.record_step_result(data["workflowId"], data["stepId"], data.get("result"))
            return None
        else:
            logger.info(f"Workflow orchestrator received unknown message type: {message.type}")
            return None

        if self.transport is not None:
            await self.transport.send(reply)
        return reply

    # ------------------------------------------------------------------
    # Step execution
    async def _run_step(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        execution: WorkflowExecution,
        run: int,
    ) -> bool:
        """Dispatch ``step`` until it completes or recovery gives up.

        Returns False when the run must stop: the workflow was aborted or the
        run token is no longer current.
        """
        retries = 0
        while True:
            step.attempts += 1
            record = StepExecution(step_id=step.id, attempt=step.attempts)
            execution.steps.append(record)

            error: Optional[Exception] = None
            output: Any = None
            try:
                handler = self.capabilities.resolve(step.required_capability)
            except HandlerNotFoundError as e:
                error = e
            else:
                record.agent_id = step.agent_id = handler.agent_id
                step.status = StepStatus.IN_PROGRESS
                message = AgentMessage(
                    from_agent_id=self.agent_id,
                    to_agent_id=handler.agent_id,
                    type=MessageType.WORKFLOW_TASK.value,
                    data={
                        "workflowId": workflow.id,
                        "stepId": step.id,
                        "action": step.action,
                        "inputData": step.input_data,
                    },
                    priority=workflow.priority,
                    requires_response=True,
                )
                logger.info(f"Dispatching step {step.id} of {workflow.id} to {handler.agent_id}")
                try:
                    output = await dispatch_step(handler, message, step.id, step.timeout_ms)
                except Exception as e:
                    error = e

            if not self._is_current(workflow, run):
                logger.warning(
                    f"Discarding result of step {step.id}: workflow {workflow.id} "
                    f"is now {workflow.status.value}"
                )
                record.error = "Result discarded"
                record.finish(step.status)
                return False

            if error is None:
                step.status = StepStatus.COMPLETED
                step.output_data = output
                step.error = None
                record.result = output
                record.finish(StepStatus.COMPLETED)
                self._heartbeat(workflow)
                logger.info(f"Step {step.id} of {workflow.id} completed")
                return True

            step.status = StepStatus.FAILED
            step.error = str(error)
            record.error = str(error)
            record.finish(StepStatus.FAILED)
            execution.errors.append(f"{step.id}: {error}")

            action = decide_recovery(step, workflow)
            if action is RecoveryAction.RETRY and retries >= self.settings.max_step_retries:
                logger.warning(f"Step {step.id} exhausted {retries} retries")
                action = RecoveryAction.ABORT
            record.recovery = action
            logger.warning(f"Step {step.id} of {workflow.id} failed ({error}); {action.value}")

            if action is RecoveryAction.RETRY:
                retries += 1
                continue
            if action is RecoveryAction.SKIP:
                return True
            await self._finish(
                workflow,
                execution,
                WorkflowStatus.FAILED,
                reason=f"Step {step.id} failed: {error}",
            )
            return False

    def _unmet_dependencies(self, workflow: Workflow, step: WorkflowStep) -> List[str]:
        return sorted(
            dep
            for dep in step.dependencies
            if workflow.get_step(dep).status is not StepStatus.COMPLETED
        )

    def _block_step(
        self, step: WorkflowStep, unmet: List[str], execution: WorkflowExecution
    ) -> None:
        step.status = StepStatus.FAILED
        step.error = f"Blocked by unfinished dependencies: {', '.join(unmet)}"
        record = StepExecution(step_id=step.id, attempt=step.attempts, error=step.error)
        record.finish(StepStatus.FAILED)
        execution.steps.append(record)
        execution.errors.append(f"{step.id}: {step.error}")
        logger.warning(f"Step {step.id} not dispatched: {step.error}")

    def _close_execution(self, workflow_id: str, status: WorkflowStatus) -> None:
        """End the open execution record of a run that is being interrupted."""
        history = self._history.get(workflow_id)
        if history and history[-1].ended_at is None:
            history[-1].finish(status)

    def _is_current(self, workflow: Workflow, run: int) -> bool:
        return (
            self._runs.get(workflow.id) == run
            and workflow.status is WorkflowStatus.RUNNING
        )

    async def _finish(
        self,
        workflow: Workflow,
        execution: WorkflowExecution,
        status: WorkflowStatus,
        reason: Optional[str] = None,
    ) -> None:
        workflow.status = status
        workflow.completed_at = utcnow()
        execution.finish(status)
        self._graphs.pop(workflow.id, None)
        await self._release_process(workflow)

        if status is WorkflowStatus.COMPLETED:
            logger.info(f"Workflow {workflow.id} completed in {execution.duration_ms:.0f}ms")
            await self._emit("workflow_completed", workflow, durationMs=execution.duration_ms)
        else:
            logger.error(f"Workflow {workflow.id} failed: {reason}")
            await self._emit(
                "workflow_failed", workflow, priority=EventPriority.HIGH, error=reason
            )

    # ------------------------------------------------------------------
    # Process integration
    async def _attach_process(
        self, workflow: Workflow, previous: WorkflowStatus, run: int
    ) -> None:
        if self.process_manager is None:
            return
        pid = self._pids.get(workflow.id)
        if pid is None:
            pid = await self.process_manager.spawn(
                self.agent_id,
                SpawnConfig(
                    name=f"workflow:{workflow.name}",
                    priority=EventPriority.from_priority(workflow.priority),
                ),
            )
            if self._runs.get(workflow.id) != run or workflow.status.is_terminal:
                # Cancelled or superseded while the process was starting.
                await self._stop_process(pid, workflow)
                return
            self._pids[workflow.id] = pid
            if workflow.status is WorkflowStatus.PAUSED:
                await self.process_manager.pause(pid)
        elif previous is WorkflowStatus.PAUSED and self._process_status(pid) is ProcessStatus.PAUSED:
            await self.process_manager.resume(pid)

    def _process_status(self, pid: str) -> Optional[ProcessStatus]:
        process = self.process_manager.get_process(pid) if self.process_manager else None
        return process.status if process else None

    def _heartbeat(self, workflow: Workflow) -> None:
        pid = self._pids.get(workflow.id)
        if pid is None or self.process_manager is None:
            return
        try:
            self.process_manager.touch(pid)
        except AgentricError as e:
            logger.warning(f"Heartbeat for workflow {workflow.id} failed: {e}")

    async def _release_process(self, workflow: Workflow) -> None:
        pid = self._pids.pop(workflow.id, None)
        if pid is not None:
            await self._stop_process(pid, workflow)

    async def _stop_process(self, pid: str, workflow: Workflow) -> None:
        if self._process_status(pid) in (None, ProcessStatus.STOPPED):
            return
        try:
            await self.process_manager.terminate(pid)
        except AgentricError as e:
            logger.warning(f"Could not terminate process {pid} of workflow {workflow.id}: {e}")

    # ------------------------------------------------------------------
    # Helpers
    def _require(self, workflow_id: str) -> Workflow:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    async def _emit(
        self,
        name: str,
        workflow: Workflow,
        priority: EventPriority = EventPriority.NORMAL,
        **data: Any,
    ) -> None:
        await self.events.event(
            name,
            source=self.agent_id,
            priority=priority,
            workflowId=workflow.id,
            workflowName=workflow.name,
            **data,
        )

    async def _persist(
        self, workflow: Workflow, execution: Optional[WorkflowExecution] = None
    ) -> None:
        if self.repository is None:
            return
        await self.repository.save_workflow(workflow)
        if execution is not None:
            await self.repository.save_execution(execution)
