"""
HTTP API for the workflow stages.

Each route runs one stage and answers with camelCase JSON. Missing
required fields answer 400 ``{error}``; stage failures answer 500
``{error, details}``.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from autoheal import __version__
from autoheal.config.settings import Settings, get_settings
from autoheal.core.types import ExecutionResult, Story, StoryTestCase
from autoheal.error_handling.exceptions import AutoHealError, ValidationError
from autoheal.generation.planner import case_from_dict
from autoheal.monitoring.logger import get_logger
from autoheal.orchestration.coordinator import WorkflowCoordinator

logger = get_logger(__name__)


class WorkflowRequest(BaseModel):
    """Request bodies accept camelCase or snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CreateStoryRequest(WorkflowRequest):
    requirements: Optional[str] = None


class FetchStoryRequest(WorkflowRequest):
    story_id: Optional[str] = None


class GenerateTestsRequest(WorkflowRequest):
    story: Optional[Dict[str, Any]] = None


class CaseListRequest(WorkflowRequest):
    test_cases: Optional[List[Dict[str, Any]]] = None
    story_id: Optional[str] = None
    story: Optional[Dict[str, Any]] = None


class ExecuteTestsRequest(WorkflowRequest):
    filename: Optional[str] = None
    story_id: Optional[str] = None
    test_cases: Optional[List[Dict[str, Any]]] = None
    max_attempts: Optional[int] = Field(None, ge=1)


class UpdateResultsRequest(WorkflowRequest):
    story_id: Optional[str] = None
    results: Optional[Dict[str, Any]] = None


def bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


def stage_failure(error: AutoHealError, details: str) -> JSONResponse:
    """Map a stage error to its JSON response."""
    if isinstance(error, ValidationError):
        return bad_request(error.message)

    logger.error(f"{details}: {error.message}", extra={"error": error.to_dict()})
    return JSONResponse(status_code=500, content={"error": error.message, "details": details})


def parse_cases(raw: List[Dict[str, Any]]) -> List[StoryTestCase]:
    try:
        return [case_from_dict(item, index) for index, item in enumerate(raw, 1)]
    except PydanticValidationError as e:
        raise ValidationError(
            "Test cases must carry text titles, steps and expected results",
            validation_type="test_cases",
            failed_rules=[error["msg"] for error in e.errors()],
        ) from e


def story_response(story: Story) -> Dict[str, Any]:
    return {
        "id": story.id,
        "title": story.title,
        "description": story.description,
        "acceptanceCriteria": story.acceptance_criteria,
        "testScenarios": story.test_scenarios,
        "extractedUrls": story.extracted_urls,
        "status": story.status,
        "type": story.issue_type,
        "priority": story.priority,
        "url": story.url,
    }


def get_coordinator(request: Request) -> WorkflowCoordinator:
    return request.app.state.coordinator


def create_app(
    coordinator: Optional[WorkflowCoordinator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        coordinator: Pipeline to serve; built from settings when omitted
        settings: Application settings

    Returns:
        FastAPI app
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.coordinator.aclose()

    app = FastAPI(title="autoheal workflow API", version=__version__, lifespan=lifespan)
    app.state.coordinator = coordinator or WorkflowCoordinator(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        return bad_request("Invalid request body")

    @app.get("/api/health")
    async def health(coordinator: WorkflowCoordinator = Depends(get_coordinator)) -> Dict[str, Any]:
        return {
            "status": "ok",
            "message": "Workflow API is running",
            "version": __version__,
            "subsystems": coordinator.health(),
        }

    @app.post("/api/workflow/create-story")
    async def create_story(
        body: CreateStoryRequest,
        coordinator: WorkflowCoordinator = Depends(get_coordinator),
    ) -> JSONResponse:
        if not body.requirements:
            return bad_request("Requirements text is required")

        try:
            story = await coordinator.create_story(body.requirements)
        except AutoHealError as e:
            return stage_failure(e, "Failed to create Jira story from requirements")

        return JSONResponse({
            "success": True,
            "storyId": story.id,
            "story": story_response(story),
            "message": f"Successfully created story {story.id}",
        })

    @app.post("/api/workflow/fetch-jira")
    async def fetch_jira(
        body: FetchStoryRequest,
        coordinator: WorkflowCoordinator = Depends(get_coordinator),
    ) -> JSONResponse:
        if not body.story_id:
            return bad_request("Story ID is required")

        try:
            story = await coordinator.fetch_story(body.story_id)
        except AutoHealError as e:
            return stage_failure(e, "Failed to fetch Jira story")

        return JSONResponse({
            "success": True,
            "story": story_response(story),
            "message": f"Successfully fetched story {story.id}",
            "jiraUrl": story.url,
        })

    @app.post("/api/workflow/generate-tests")
    async def generate_tests(
        body: GenerateTestsRequest,
        coordinator: WorkflowCoordinator = Depends(get_coordinator),
    ) -> JSONResponse:
        if not body.story:
            return bad_request("Story data is required")

        try:
            story = Story.model_validate(body.story)
        except PydanticValidationError:
            return bad_request("Story data must include an id")

        try:
            test_cases = await coordinator.generate_tests(story)
        except AutoHealError as e:
            return stage_failure(e, "Failed to generate test cases")

        return JSONResponse({
            "success": True,
            "testCases": [case.to_api() for case in test_cases],
            "message": f"Generated {len(test_cases)} test cases",
        })

    @app.post("/api/workflow/push-testrail")
    async def push_testrail(
        body: CaseListRequest,
        coordinator: WorkflowCoordinator = Depends(get_coordinator),
    ) -> JSONResponse:
        if not body.test_cases or not body.story_id:
            return bad_request("Test cases and story ID are required")

        try:
            summary = await coordinator.push_testrail(parse_cases(body.test_cases), body.story_id)
        except AutoHealError as e:
            return stage_failure(e, "Failed to push test cases to TestRail")

        return JSONResponse({
            "success": True,
            **summary,
            "message": f"TestRail sync complete: {summary['created']} created, {summary['updated']} updated",
        })

    @app.post("/api/workflow/generate-scripts")
    async def generate_scripts(
        body: CaseListRequest,
        coordinator: WorkflowCoordinator = Depends(get_coordinator),
    ) -> JSONResponse:
        if not body.test_cases or not body.story_id:
            return bad_request("Test cases and story ID are required")

        try:
            story = Story.model_validate(body.story) if body.story else None
        except PydanticValidationError:
            return bad_request("Story data must include an id")

        try:
            artifact, resolution = await coordinator.generate_scripts(
                parse_cases(body.test_cases), body.story_id, story
            )
        except AutoHealError as e:
            return stage_failure(e, "Failed to generate test scripts")

        return JSONResponse({
            "success": True,
            "filename": artifact.filename,
            "filepath": str(artifact.path),
            "targetUrl": resolution.chosen,
            "targetSource": resolution.chosen_source,
            "message": f"Generated test script: {artifact.filename}",
        })

    @app.post("/api/workflow/execute-tests")
    async def execute_tests(
        body: ExecuteTestsRequest,
        coordinator: WorkflowCoordinator = Depends(get_coordinator),
    ) -> JSONResponse:
        if not body.filename:
            return bad_request("Filename is required")

        try:
            outcome = await coordinator.execute_tests(
                body.filename,
                story_id=body.story_id,
                test_cases=parse_cases(body.test_cases or []),
                max_attempts=body.max_attempts,
            )
        except AutoHealError as e:
            return stage_failure(e, "Critical failure in test execution system")

        return JSONResponse(coordinator.reporter.to_api_response(outcome))

    @app.post("/api/workflow/update-results")
    async def update_results(
        body: UpdateResultsRequest,
        coordinator: WorkflowCoordinator = Depends(get_coordinator),
    ) -> JSONResponse:
        if not body.story_id or not body.results:
            return bad_request("Story ID and results are required")

        results = body.results
        try:
            result = ExecutionResult(
                passed=int(results.get("passed") or 0),
                failed=int(results.get("failed") or 0),
                skipped=int(results.get("skipped") or 0),
                duration_seconds=float(results.get("duration") or 0),
            )
        except (TypeError, ValueError, PydanticValidationError):
            return bad_request("Results must carry numeric passed, failed and duration")

        try:
            await coordinator.update_results(body.story_id, result, error=results.get("error"))
        except AutoHealError as e:
            return stage_failure(e, "Failed to update results in Jira")

        return JSONResponse({
            "success": True,
            "message": f"Results posted to Jira ticket {body.story_id}",
        })

    return app
