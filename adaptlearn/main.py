"""FastAPI application wiring for the adaptive learning engine."""

from __future__ import annotations

import logging
from typing import Dict

from fastapi import Depends, FastAPI, HTTPException

from .artifacts import ArtifactCache
from .config import EngineConfig
from .difficulty import decide_difficulty, effective_difficulty
from .domain import ArtifactKind, canonicalize
from .generation import ContentGenerator, QuizGenerationError, build_backend
from .grading import GradingEngine
from .learning_style import assess_learning_style
from .metrics import METRICS
from .models import (
    ArtifactResponse,
    DifficultyRequest,
    DifficultyResponse,
    EmotionEvent,
    EmotionLogRequest,
    EmotionOverview,
    LearningStyleRequest,
    LearningStyleResponse,
    Material,
    MaterialCreateRequest,
    MaterialUpdateRequest,
    QuizFeedbackRequest,
    QuizFeedbackResponse,
    QuizGenerateRequest,
    QuizQuestion,
    RemedialDocument,
    RemedialRequest,
)
from .remedial import RemedialComposer
from .repositories import MaterialNotFoundError, PersistenceError
from .services import EmotionService, MaterialService, QuizService, RemedialService
from .storage import InMemoryRepository, SqliteRepository


logger = logging.getLogger(__name__)

app = FastAPI(title="AdaptLearn", version="0.1.0")


def get_material_service() -> MaterialService:
    return app.state.material_service


def get_emotion_service() -> EmotionService:
    return app.state.emotion_service


def get_quiz_service() -> QuizService:
    return app.state.quiz_service


def get_remedial_service() -> RemedialService:
    return app.state.remedial_service


@app.on_event("startup")
def startup() -> None:
    config = EngineConfig.from_env()
    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))

    if config.database_path:
        repository = SqliteRepository(config.database_path)
    else:
        repository = InMemoryRepository()
    generator = ContentGenerator(build_backend(config), config)
    grading = GradingEngine(
        generator,
        tolerance=config.calc_tolerance,
        recap_min_length=config.recap_min_length,
        recap_keyword_count=config.recap_keyword_count,
    )
    composer = RemedialComposer(generator, repository, repository, repository, config)

    app.state.config = config
    app.state.repository = repository
    app.state.material_service = MaterialService(repository, ArtifactCache(repository, generator))
    app.state.emotion_service = EmotionService(repository, config)
    app.state.quiz_service = QuizService(repository, generator, grading)
    app.state.remedial_service = RemedialService(repository, composer)
    logger.info("AdaptLearn started with %s backend", config.llm_provider)


@app.on_event("shutdown")
def shutdown() -> None:
    repository = getattr(app.state, "repository", None)
    if isinstance(repository, SqliteRepository):
        repository.close()


def _not_found(exc: MaterialNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


def _unavailable(exc: PersistenceError) -> HTTPException:
    logger.error("Persistence failure: %s", exc)
    return HTTPException(status_code=503, detail=str(exc))


# --- materials -------------------------------------------------------------------


@app.post("/v1/materials", response_model=Material, status_code=201)
def create_material(
    request: MaterialCreateRequest, service: MaterialService = Depends(get_material_service)
) -> Material:
    try:
        return service.author(request.title, request.content)
    except PersistenceError as exc:
        raise _unavailable(exc) from exc


@app.put("/v1/materials/{material_id}", response_model=Material)
def update_material(
    material_id: str,
    request: MaterialUpdateRequest,
    service: MaterialService = Depends(get_material_service),
) -> Material:
    try:
        return service.update_content(material_id, request.content, title=request.title)
    except MaterialNotFoundError as exc:
        raise _not_found(exc) from exc
    except PersistenceError as exc:
        raise _unavailable(exc) from exc


def _artifact(service: MaterialService, material_id: str, kind: ArtifactKind, force: bool) -> ArtifactResponse:
    try:
        return service.get_artifact(material_id, kind, force=force)
    except MaterialNotFoundError as exc:
        raise _not_found(exc) from exc
    except PersistenceError as exc:
        raise _unavailable(exc) from exc


@app.get("/v1/materials/{material_id}/ar-recipe", response_model=ArtifactResponse)
def ar_recipe(
    material_id: str, force: bool = False, service: MaterialService = Depends(get_material_service)
) -> ArtifactResponse:
    return _artifact(service, material_id, ArtifactKind.AR_RECIPE, force)


@app.get("/v1/materials/{material_id}/ar-explain", response_model=ArtifactResponse)
def ar_explain(
    material_id: str, force: bool = False, service: MaterialService = Depends(get_material_service)
) -> ArtifactResponse:
    return _artifact(service, material_id, ArtifactKind.AR_EXPLANATION, force)


@app.get("/v1/materials/{material_id}/audio-script", response_model=ArtifactResponse)
def audio_script(
    material_id: str, force: bool = False, service: MaterialService = Depends(get_material_service)
) -> ArtifactResponse:
    return _artifact(service, material_id, ArtifactKind.AUDIO_SCRIPT, force)


@app.get("/v1/materials/{material_id}/refined", response_model=ArtifactResponse)
def refined_text(
    material_id: str, force: bool = False, service: MaterialService = Depends(get_material_service)
) -> ArtifactResponse:
    return _artifact(service, material_id, ArtifactKind.REFINED_TEXT, force)


# --- decisions -------------------------------------------------------------------


@app.post("/v1/difficulty", response_model=DifficultyResponse)
def difficulty(request: DifficultyRequest) -> DifficultyResponse:
    emotion = canonicalize(request.emotion)
    return DifficultyResponse(
        base=decide_difficulty(request.duration_seconds, request.wrong_count),
        effective=effective_difficulty(request.duration_seconds, request.wrong_count, emotion),
        emotion=emotion,
    )


@app.post("/v1/emotions", response_model=EmotionEvent, status_code=201)
def log_emotion(
    request: EmotionLogRequest, service: EmotionService = Depends(get_emotion_service)
) -> EmotionEvent:
    try:
        return service.log_event(request)
    except PersistenceError as exc:
        raise _unavailable(exc) from exc


@app.get("/v1/students/{subject_id}/emotions", response_model=EmotionOverview)
def emotion_overview(
    subject_id: str, service: EmotionService = Depends(get_emotion_service)
) -> EmotionOverview:
    try:
        return service.overview(subject_id)
    except PersistenceError as exc:
        raise _unavailable(exc) from exc


# --- quiz ------------------------------------------------------------------------


@app.post("/v1/quiz/generate", response_model=QuizQuestion)
def quiz_generate(
    request: QuizGenerateRequest, service: QuizService = Depends(get_quiz_service)
) -> QuizQuestion:
    try:
        return service.next_question(request)
    except MaterialNotFoundError as exc:
        raise _not_found(exc) from exc
    except QuizGenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _unavailable(exc) from exc


@app.post("/v1/quiz/feedback", response_model=QuizFeedbackResponse)
def quiz_feedback(
    request: QuizFeedbackRequest, service: QuizService = Depends(get_quiz_service)
) -> QuizFeedbackResponse:
    try:
        return service.submit_answer(request)
    except MaterialNotFoundError as exc:
        raise _not_found(exc) from exc
    except PersistenceError as exc:
        raise _unavailable(exc) from exc


# --- remedial --------------------------------------------------------------------


@app.get("/v1/materials/{material_id}/remedial", response_model=RemedialDocument)
def get_remedial(
    material_id: str, subject_id: str, service: RemedialService = Depends(get_remedial_service)
) -> RemedialDocument:
    try:
        document = service.get(subject_id, material_id)
    except MaterialNotFoundError as exc:
        raise _not_found(exc) from exc
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    if document is None:
        raise HTTPException(status_code=404, detail=f"No remedial document for {subject_id}")
    return document


@app.post("/v1/materials/{material_id}/remedial", response_model=RemedialDocument)
def compose_remedial(
    material_id: str,
    request: RemedialRequest,
    service: RemedialService = Depends(get_remedial_service),
) -> RemedialDocument:
    try:
        return service.compose(material_id, request)
    except MaterialNotFoundError as exc:
        raise _not_found(exc) from exc
    except PersistenceError as exc:
        raise _unavailable(exc) from exc


# --- misc ------------------------------------------------------------------------


@app.post("/v1/learning-style", response_model=LearningStyleResponse)
def learning_style(request: LearningStyleRequest) -> LearningStyleResponse:
    try:
        style, percentages, description = assess_learning_style(request.answers)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return LearningStyleResponse(style=style, percentages=percentages, description=description)


@app.get("/v1/metrics")
def metrics() -> Dict[str, object]:
    return METRICS.snapshot()


__all__ = ["app"]
