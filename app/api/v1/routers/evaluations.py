"""
API router for evaluation endpoints.

Routes only translate between HTTP and the application service. Domain
errors propagate to ErrorHandlerMiddleware, which maps them to status codes.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Path, Query, status

from app.api.dependencies import AnalysisClientDep, EvaluationServiceDep
from app.api.v1.models.requests import (
    CursorRequest,
    FinalizeRequest,
    GeneralInfoRequest,
    TreeUpdateRequest,
)
from app.api.v1.models.responses import (
    AnalysisResponse,
    EvaluationListItem,
    EvaluationListResponse,
    ExportResponse,
    SummaryResponse,
)
from app.domain.models import ColumnStatistics, Evaluation, PlotHistory


router = APIRouter(
    prefix="/evaluations",
    tags=["evaluations"],
    responses={
        404: {"description": "Evaluation not found"},
        429: {"description": "Rate limit exceeded"},
    },
)

EvaluationId = Annotated[str, Path(description="Unique identifier for the evaluation")]


@router.post(
    "",
    response_model=Evaluation,
    status_code=status.HTTP_201_CREATED,
    summary="Start an evaluation",
)
async def create_evaluation(
    info: GeneralInfoRequest,
    service: EvaluationServiceDep,
) -> Evaluation:
    """Create an evaluation with N blank trees; it becomes the active one."""
    return service.create_evaluation(**info.model_dump(exclude_none=True))


@router.get(
    "",
    response_model=EvaluationListResponse,
    summary="List evaluations",
)
async def list_evaluations(service: EvaluationServiceDep) -> EvaluationListResponse:
    """List every evaluation, most recently modified first."""
    evaluations = service.list_evaluations()
    items = [
        EvaluationListItem(
            id=e.id,
            plot_name=e.plot_name,
            grower_name=e.grower_name,
            visit_date=e.visit_date,
            status=e.status,
            progress_percent=service.summarize_evaluation(e).progress_percent,
        )
        for e in evaluations
    ]
    return EvaluationListResponse(count=len(items), results=items)


@router.get("/{evaluation_id}", response_model=Evaluation, summary="Get an evaluation")
async def get_evaluation(
    evaluation_id: EvaluationId,
    service: EvaluationServiceDep,
) -> Evaluation:
    return service.get_evaluation(evaluation_id)


@router.post(
    "/{evaluation_id}/open",
    response_model=Evaluation,
    summary="Select an evaluation for editing",
)
async def open_evaluation(
    evaluation_id: EvaluationId,
    service: EvaluationServiceDep,
) -> Evaluation:
    return service.open_evaluation(evaluation_id)


@router.patch(
    "/{evaluation_id}",
    response_model=Evaluation,
    summary="Update plot and grower details",
    responses={409: {"description": "Evaluation is not editable"}},
)
async def update_general_info(
    evaluation_id: EvaluationId,
    info: GeneralInfoRequest,
    service: EvaluationServiceDep,
) -> Evaluation:
    return service.update_general_info(evaluation_id, **info.model_dump(exclude_none=True))


@router.delete(
    "/{evaluation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an evaluation",
)
async def delete_evaluation(
    evaluation_id: EvaluationId,
    service: EvaluationServiceDep,
) -> None:
    service.delete_evaluation(evaluation_id)


@router.put(
    "/{evaluation_id}/trees/{tree_id}",
    response_model=Evaluation,
    summary="Record one tree",
    responses={
        400: {"description": "Value out of range"},
        409: {"description": "Evaluation is not editable"},
    },
)
async def update_tree(
    evaluation_id: EvaluationId,
    tree_id: Annotated[int, Path(ge=1, description="Site number, 1..N")],
    data: TreeUpdateRequest,
    service: EvaluationServiceDep,
) -> Evaluation:
    """Merge the given counts into the tree and mark it sampled."""
    return service.update_tree(evaluation_id, tree_id, **data.model_dump(exclude_none=True))


@router.put(
    "/{evaluation_id}/cursor",
    response_model=Evaluation,
    summary="Move the navigation cursor",
)
async def move_cursor(
    evaluation_id: EvaluationId,
    data: CursorRequest,
    service: EvaluationServiceDep,
) -> Evaluation:
    return service.move_cursor(evaluation_id, data.index)


@router.post(
    "/{evaluation_id}/finalize",
    response_model=Evaluation,
    summary="Complete an evaluation",
    description="""
    Mark the evaluation completed.

    With `impute=true`, every tree that was not sampled is projected from the
    sampled ones:
    - Counts are drawn from a Gaussian fitted to each column (mean, population std)
    - Bored and rusted counts are clamped to their totals
    - Severity grade and deficiency are resampled from the observed values

    At least 2 sampled trees are needed to project; otherwise nothing is saved.
    """,
    responses={
        409: {"description": "Evaluation is not editable"},
        422: {"description": "Not enough sampled trees to project the rest"},
    },
)
async def finalize_evaluation(
    evaluation_id: EvaluationId,
    options: FinalizeRequest,
    service: EvaluationServiceDep,
) -> Evaluation:
    return service.finalize(evaluation_id, impute=options.impute, seed=options.seed)


@router.post(
    "/{evaluation_id}/reopen",
    response_model=Evaluation,
    summary="Reopen a completed evaluation",
    responses={409: {"description": "Evaluation is already in progress"}},
)
async def reopen_evaluation(
    evaluation_id: EvaluationId,
    service: EvaluationServiceDep,
) -> Evaluation:
    return service.reopen(evaluation_id)


@router.get(
    "/{evaluation_id}/summary",
    response_model=SummaryResponse,
    summary="Infestation and rust summary",
)
async def get_summary(
    evaluation_id: EvaluationId,
    service: EvaluationServiceDep,
    harvest_estimate: Annotated[Optional[float], Query(ge=0, description="Expected harvest")] = None,
    price_per_unit: Annotated[Optional[float], Query(ge=0, description="Price per harvest unit")] = None,
) -> SummaryResponse:
    """Totals, rates and risk levels, plus the loss estimate when possible."""
    evaluation = service.get_evaluation(evaluation_id)
    estimated_loss = None
    if harvest_estimate is not None and price_per_unit is not None:
        estimated_loss = service.estimate_loss(evaluation_id, harvest_estimate, price_per_unit)

    return SummaryResponse(
        evaluation_id=evaluation_id,
        summary=service.summarize_evaluation(evaluation),
        estimated_loss=estimated_loss,
    )


@router.get(
    "/{evaluation_id}/statistics",
    response_model=ColumnStatistics,
    summary="Column statistics of the sampled trees",
    responses={422: {"description": "Fewer than 2 sampled trees"}},
)
async def get_statistics(
    evaluation_id: EvaluationId,
    service: EvaluationServiceDep,
) -> ColumnStatistics:
    return service.column_statistics(evaluation_id)


@router.get(
    "/{evaluation_id}/history",
    response_model=PlotHistory,
    summary="Rate history of the evaluation's plot",
    responses={422: {"description": "Fewer than 2 completed evaluations for the plot"}},
)
async def get_history(
    evaluation_id: EvaluationId,
    service: EvaluationServiceDep,
) -> PlotHistory:
    return service.plot_history(evaluation_id)


@router.get(
    "/{evaluation_id}/export",
    response_model=ExportResponse,
    summary="Final tree table for export",
    responses={409: {"description": "Evaluation is still in progress"}},
)
async def export_evaluation(
    evaluation_id: EvaluationId,
    service: EvaluationServiceDep,
) -> ExportResponse:
    evaluation = service.export_evaluation(evaluation_id)
    return ExportResponse(
        evaluation_id=evaluation.id,
        plot_name=evaluation.plot_name,
        grower_name=evaluation.grower_name,
        visit_date=evaluation.visit_date,
        variety=evaluation.variety,
        location=evaluation.location,
        summary=service.summarize_evaluation(evaluation),
        trees=list(evaluation.trees),
    )


@router.post(
    "/{evaluation_id}/analysis",
    response_model=AnalysisResponse,
    summary="Agronomic recommendation",
    responses={
        401: {"description": "Analysis API key not configured"},
        502: {"description": "Analysis service unavailable"},
    },
)
async def request_analysis(
    evaluation_id: EvaluationId,
    service: EvaluationServiceDep,
    client: AnalysisClientDep,
) -> AnalysisResponse:
    text = await service.request_analysis(evaluation_id, client)
    return AnalysisResponse(evaluation_id=evaluation_id, analysis=text)
