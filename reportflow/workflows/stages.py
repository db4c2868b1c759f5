"""The five report stages: upload, process, analyze, plan, finalize.

Each stage reads the previous stage's typed output, makes its external
calls and returns its own output. Report progress updates are best effort;
everything else that fails propagates and fails the stage.
"""

import asyncio
import re
import time
from typing import Any, Dict, List, Optional

from reportflow.clients.processor import DocumentProcessor
from reportflow.logging import get_logger
from reportflow.workflows.errors import ProcessingFailedError, ProcessingTimeoutError
from reportflow.workflows.models import (
    STEP_ORDER,
    AnalysisOutput,
    CarePlanOutput,
    FinalizeOutput,
    ProcessOutput,
    StepName,
    UploadOutput,
    WorkflowResults,
    generate_id,
    utc_now,
)
from reportflow.workflows.pipeline import RetryPolicy, StageContext, WorkflowStep
from reportflow.workflows.scoring import processing_time_seconds, quality_score
from reportflow.workflows.usage import increment_tenant_usage, update_subject_status

logger = get_logger("reportflow.workflows.stages")

_RECORDING_EXTENSION = re.compile(r"\.(edf|eeg|bdf)$", re.IGNORECASE)


def storage_path(tenant_id: str, subject_id: str, file_name: str) -> str:
    return f"edf-files/{tenant_id}/{subject_id}/{file_name}"


async def wait_for_processing(
    processor: DocumentProcessor,
    job_id: str,
    poll_interval: float,
    max_wait: float,
) -> Dict[str, Any]:
    """Poll the processor until the job completes, fails or `max_wait` passes."""
    deadline = time.monotonic() + max_wait
    while True:
        status = await processor.poll_status(job_id)
        state = status.get("status")
        if state == "completed":
            return status
        if state == "failed":
            raise ProcessingFailedError(
                f"Document processing failed: {status.get('message', 'unknown error')}"
            )
        if time.monotonic() + poll_interval > deadline:
            raise ProcessingTimeoutError(
                f"Document processing timeout after {max_wait:g}s (job {job_id})"
            )
        await asyncio.sleep(poll_interval)


async def upload_file(ctx: StageContext, _previous=None) -> UploadOutput:
    workflow = ctx.workflow
    upload = await ctx.storage.upload(
        ctx.file.content,
        storage_path(workflow.tenant_id, ctx.subject.id, ctx.file.name),
        metadata={
            "tenant_id": workflow.tenant_id,
            "subject_id": ctx.subject.id,
            "workflow_id": workflow.id,
        },
        content_type=ctx.file.content_type,
    )

    file_record = UploadOutput(
        id=generate_id("file"),
        file_name=ctx.file.name,
        file_size=ctx.file.size,
        storage_path=upload["path"],
        storage_url=upload["url"],
    )

    try:
        await ctx.store.add("uploaded_files", {
            **file_record.model_dump(mode="json"),
            "workflow_id": workflow.id,
            "patient_id": ctx.subject.id,
            "clinic_id": workflow.tenant_id,
            "status": "uploaded",
        })
    except Exception as e:
        logger.warning("Could not save file record for workflow %s: %s", workflow.id, e)

    # The report exists from here on so the dashboard can show progress.
    created = await ctx.recorder.create_report({
        "clinic_id": workflow.tenant_id,
        "patient_id": ctx.subject.id,
        "file_name": ctx.file.name,
        "file_path": upload["path"],
        "status": "processing",
        "report_data": {
            "title": _RECORDING_EXTENSION.sub("", ctx.file.name),
            "type": "EEG/P&ID Analysis",
            "report_type": "eeg_analysis",
            "patient_name": ctx.subject.name,
            "workflow_id": workflow.id,
            "file_size": ctx.file.size,
            "file_url": upload["url"],
            "processing_status": "uploaded",
            "processing_step": "File uploaded - Analysis in progress",
            "progress": 20,
            "uploaded_at": file_record.uploaded_at.isoformat(),
        },
    })
    if created.ok and created.record:
        workflow.results.report_id = created.record["id"]
        logger.info("Report entry %s created for workflow %s", created.record["id"], workflow.id)

    return file_record


async def process_document(ctx: StageContext, _upload: UploadOutput) -> ProcessOutput:
    workflow = ctx.workflow
    await ctx.recorder.record_progress(
        ctx.report_id, "pid_processing", "Document processing in progress", 40
    )

    submitted = await ctx.processor.submit(ctx.file.name, ctx.file.content, {
        "subject_id": ctx.subject.id,
        "subject_name": ctx.subject.name,
        "tenant_id": workflow.tenant_id,
        "workflow_id": workflow.id,
    })
    job_id = submitted["job_id"]

    await wait_for_processing(
        ctx.processor,
        job_id,
        poll_interval=ctx.options.poll_interval_seconds,
        max_wait=ctx.options.max_wait_seconds,
    )
    report = await ctx.processor.fetch_result(job_id)

    await ctx.recorder.record_progress(
        ctx.report_id, "pid_completed", "Document processing completed", 60,
        pid_job_id=job_id,
    )
    return ProcessOutput(job_id=job_id, report=report)


async def analyze_report(ctx: StageContext, processed: ProcessOutput) -> AnalysisOutput:
    workflow = ctx.workflow
    await ctx.recorder.record_progress(
        ctx.report_id, "aims_analyzing", "AI analysis in progress", 70
    )

    analysis = await ctx.engine.analyze(processed.report, ctx.subject)

    saved = await ctx.store.add("analysis_reports", {
        "id": generate_id("analysis"),
        "type": "assessment_analysis",
        "clinic_id": workflow.tenant_id,
        "patient_id": ctx.subject.id,
        "workflow_id": workflow.id,
        "source_report_id": processed.job_id,
        "standardized_report": analysis.get("standardized_report", {}),
        "risk_assessment": analysis.get("risk_assessment", {}),
        "recommendations": analysis.get("recommendations", []),
        "metadata": analysis.get("metadata", {}),
        "status": "completed",
    })

    await ctx.recorder.record_progress(
        ctx.report_id, "aims_completed", "AI analysis completed", 85,
        aims_report_id=saved["id"],
    )
    return AnalysisOutput(
        report_id=saved["id"],
        standardized_report=analysis.get("standardized_report", {}),
        risk_assessment=analysis.get("risk_assessment", {}),
        recommendations=analysis.get("recommendations", []),
    )


async def generate_care_plan(ctx: StageContext, analysis: AnalysisOutput) -> CarePlanOutput:
    workflow = ctx.workflow
    await ctx.recorder.record_progress(
        ctx.report_id, "careplan_generating", "Generating personalized care plan", 90
    )

    care_plan = await ctx.engine.generate_care_plan(analysis.risk_assessment, ctx.subject)

    saved = await ctx.store.add("care_plans", {
        "id": generate_id("careplan"),
        "workflow_id": workflow.id,
        "patient_id": ctx.subject.id,
        "clinic_id": workflow.tenant_id,
        "analysis_report_id": analysis.report_id,
        "care_plan": care_plan,
        "status": "active",
    })
    return CarePlanOutput(
        id=saved["id"],
        analysis_report_id=analysis.report_id,
        care_plan=care_plan,
    )


async def finalize_report(ctx: StageContext, plan: CarePlanOutput) -> FinalizeOutput:
    workflow = ctx.workflow
    results = workflow.results
    options = ctx.options

    elapsed = processing_time_seconds(workflow.started_at)
    score = quality_score(
        workflow.steps.values(),
        elapsed,
        failed_step_penalty=options.failed_step_penalty,
        time_threshold_seconds=options.time_threshold_seconds,
        time_penalty=options.time_penalty,
    )
    summary = {
        "workflow_id": workflow.id,
        "total_processing_time": elapsed,
        "completed_steps": len(STEP_ORDER),
        "quality_score": score,
    }

    report_data = {
        "workflow_id": workflow.id,
        "type": "complete_eeg_analysis",
        "report_type": "complete_eeg_analysis",
        "original_file": results.upload.model_dump(mode="json") if results.upload else None,
        "pid_report": results.process.report if results.process else None,
        "aims_analysis": results.analyze.model_dump(mode="json") if results.analyze else None,
        "care_plan": plan.care_plan,
        "processing_workflow": summary,
        "processing_status": "completed",
        "processing_step": "Analysis completed successfully",
        "progress": 100,
        "completed_at": utc_now().isoformat(),
    }

    report_id = ctx.report_id
    if report_id:
        updated = await ctx.recorder.update_report(report_id, report_data, status="completed")
        if not updated.ok:
            raise RuntimeError(f"Failed to update final report {report_id}: {updated.error}")
    else:
        logger.warning("No report id on workflow %s; creating the final report", workflow.id)
        # Earlier per-stage result writes had no report to land on.
        created = await ctx.recorder.create_report({
            "clinic_id": workflow.tenant_id,
            "patient_id": ctx.subject.id,
            "file_name": workflow.file_name,
            "file_path": results.upload.storage_path if results.upload else "",
            "status": "completed",
            "report_data": {**report_data, "results": _results_bag(results)},
        })
        if not created.ok:
            raise RuntimeError(f"Failed to create final report: {created.error}")
        report_id = created.record["id"]
        results.report_id = report_id

    await update_subject_status(ctx.store, ctx.subject.id, "report_completed")
    await increment_tenant_usage(ctx.store, workflow.tenant_id)

    return FinalizeOutput(
        report_id=report_id,
        total_processing_time=elapsed,
        completed_steps=len(STEP_ORDER),
        quality_score=score,
    )


def _results_bag(results: WorkflowResults) -> Dict[str, Any]:
    bag = {}
    for name in STEP_ORDER:
        output = results.get(name)
        if output is not None:
            bag[name.value] = output.model_dump(mode="json")
    return bag


def default_steps(retry_policy: Optional[RetryPolicy] = None) -> List[WorkflowStep]:
    policy = retry_policy or RetryPolicy()
    return [
        WorkflowStep(StepName.UPLOAD, upload_file, policy),
        WorkflowStep(StepName.PROCESS, process_document, policy),
        WorkflowStep(StepName.ANALYZE, analyze_report, policy),
        WorkflowStep(StepName.PLAN, generate_care_plan, policy),
        WorkflowStep(StepName.FINALIZE, finalize_report, policy),
    ]
