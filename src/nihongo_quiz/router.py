import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, File, Form, Request, Response, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import ValidationError

from .admin import AdminService
from .config import settings
from .errors import (
    ContentValidationError,
    InvalidAnswer,
    InvalidTransition,
    NotFoundError,
    QuizStateError,
    StoreError,
    UploadError,
    WrongQuestionType,
)
from .globals import templates
from .models import Category, Chapter, QuestionDraft
from .session import Active, Completed, QuizSession
from .uploads import ImageFile

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependencies ---
def get_session_id(
    session_id: Optional[str] = Cookie(None, alias=settings.SESSION_COOKIE_NAME)
) -> Optional[str]:
    return session_id


def is_expired(session: QuizSession) -> bool:
    return datetime.now() - session.created_at > timedelta(minutes=settings.SESSION_TIMEOUT_MINUTES)


def prune_expired_sessions(sessions: dict) -> None:
    expired = [sid for sid, s in sessions.items() if is_expired(s)]
    for sid in expired:
        sessions.pop(sid).discard()
    if expired:
        logger.info(f"Pruned {len(expired)} expired session(s)")


def get_active_session(request: Request, session_id: Optional[str]) -> Optional[QuizSession]:
    sessions = request.app.state.sessions
    if not session_id or session_id not in sessions:
        return None
    session = sessions[session_id]
    if is_expired(session):
        session.discard()
        del sessions[session_id]
        return None
    return session


def get_admin(request: Request) -> AdminService:
    return request.app.state.admin


def error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def state_error(exc: QuizStateError) -> JSONResponse:
    if isinstance(exc, (InvalidAnswer, WrongQuestionType)):
        return error(str(exc), 400)
    return error(str(exc), 409)


def list_categories(request: Request):
    try:
        records = request.app.state.store.list_categories()
    except StoreError as e:
        logger.error(f"Could not load categories: {e}")
        return []
    return [Category.from_record(r) for r in records]


def list_chapters(request: Request, category_id: str):
    try:
        records = request.app.state.store.list_chapters(category_id)
    except StoreError as e:
        logger.error(f"Could not load chapters for {category_id}: {e}")
        return []
    chapters = []
    for record in records:
        try:
            chapters.append(Chapter.from_record(record))
        except (TypeError, ValueError):
            logger.warning(f"Skipping chapter {record.get('id')}: unreadable chapter number")
    return chapters


def apply_answer(session: QuizSession, option_key: Optional[str], text: Optional[str]):
    if option_key is not None:
        return session.submit_multiple_choice(option_key)
    return session.submit_free_text(text or "")


# --- Pages ---
@router.get("/", response_class=HTMLResponse)
async def home(request: Request):
    categories = list_categories(request)
    chapters = {c.id: list_chapters(request, c.id) for c in categories}
    return templates.TemplateResponse(
        request, "start.html", {"categories": categories, "chapters": chapters}
    )


@router.post("/start", response_class=RedirectResponse)
async def start_quiz_session(
    request: Request,
    category_id: str = Form(...),
    chapter_id: Optional[str] = Form(None),
    session_id: Optional[str] = Depends(get_session_id),
):
    sessions = request.app.state.sessions
    old = sessions.pop(session_id, None) if session_id else None
    if old:
        old.discard()
    prune_expired_sessions(sessions)

    session = QuizSession(request.app.state.loader, category_id, chapter_id or None)
    new_id = str(uuid.uuid4())
    sessions[new_id] = session
    await session.start()

    logger.info(
        f"New session: {new_id} [Category: {category_id}, Chapter: {chapter_id}, "
        f"Questions: {session.total}]"
    )

    redirect = RedirectResponse(url="/quiz", status_code=303)
    redirect.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=new_id,
        httponly=True,
        samesite="Lax",
    )
    return redirect


@router.get("/quiz", response_class=HTMLResponse)
async def quiz_page(request: Request, session_id: Optional[str] = Depends(get_session_id)):
    session = get_active_session(request, session_id)
    if not session:
        return RedirectResponse(url="/", status_code=302)
    if isinstance(session.state, Completed):
        return RedirectResponse(url="/result", status_code=302)
    return templates.TemplateResponse(request, "quiz.html", {"quiz": session.view()})


@router.post("/quiz/answer")
async def answer_form(
    request: Request,
    option_key: Optional[str] = Form(None),
    text: Optional[str] = Form(None),
    session_id: Optional[str] = Depends(get_session_id),
):
    session = get_active_session(request, session_id)
    if not session:
        return RedirectResponse(url="/", status_code=303)
    try:
        apply_answer(session, option_key, text)
    except QuizStateError as e:
        logger.info(f"Rejected answer for {session_id}: {e}")
    return RedirectResponse(url="/quiz", status_code=303)


@router.post("/quiz/next")
async def next_form(request: Request, session_id: Optional[str] = Depends(get_session_id)):
    session = get_active_session(request, session_id)
    if not session:
        return RedirectResponse(url="/", status_code=303)
    try:
        session.advance()
    except QuizStateError as e:
        logger.info(f"Rejected advance for {session_id}: {e}")
    return RedirectResponse(url="/quiz", status_code=303)


@router.post("/quiz/restart")
async def restart_form(request: Request, session_id: Optional[str] = Depends(get_session_id)):
    session = get_active_session(request, session_id)
    if not session:
        return RedirectResponse(url="/", status_code=303)
    await session.restart()
    return RedirectResponse(url="/quiz", status_code=303)


@router.get("/result", response_class=HTMLResponse)
async def result_page(request: Request, session_id: Optional[str] = Depends(get_session_id)):
    session = get_active_session(request, session_id)
    if not session:
        return RedirectResponse(url="/", status_code=302)
    if not isinstance(session.state, Completed):
        return RedirectResponse(url="/quiz", status_code=302)
    return templates.TemplateResponse(
        request,
        "result.html",
        {"summary": session.summary(), "answers": session.answers},
    )


# --- Quiz API ---
@router.get("/api/categories")
async def get_categories(request: Request):
    return list_categories(request)


@router.get("/api/categories/{category_id}/chapters")
async def get_chapters(request: Request, category_id: str):
    return list_chapters(request, category_id)


@router.get("/api/quiz")
async def get_quiz(request: Request, session_id: Optional[str] = Depends(get_session_id)):
    session = get_active_session(request, session_id)
    if not session:
        return error("Session invalid", 401)
    return session.view()


@router.post("/api/quiz/answer")
async def submit_answer(
    request: Request,
    option_key: Optional[str] = Form(None),
    text: Optional[str] = Form(None),
    session_id: Optional[str] = Depends(get_session_id),
):
    session = get_active_session(request, session_id)
    if not session:
        return error("Session invalid", 401)
    if isinstance(session.state, Active) and session.state.revealed:
        return error("Already answered", 400)
    try:
        return apply_answer(session, option_key, text)
    except QuizStateError as e:
        return state_error(e)


@router.post("/api/quiz/next")
async def next_question(request: Request, session_id: Optional[str] = Depends(get_session_id)):
    session = get_active_session(request, session_id)
    if not session:
        return error("Session invalid", 401)
    try:
        session.advance()
    except QuizStateError as e:
        return state_error(e)
    return session.view()


@router.post("/api/quiz/restart")
async def restart_quiz(request: Request, session_id: Optional[str] = Depends(get_session_id)):
    session = get_active_session(request, session_id)
    if not session:
        return error("Session invalid", 401)
    await session.restart()
    return session.view()


@router.get("/api/result")
async def get_result(request: Request, session_id: Optional[str] = Depends(get_session_id)):
    session = get_active_session(request, session_id)
    if not session:
        return error("Session invalid", 401)
    try:
        summary = session.summary()
    except InvalidTransition as e:
        return state_error(e)
    return {**summary.model_dump(), "answers": session.answers}


@router.post("/api/reset")
async def reset_session(
    request: Request, response: Response, session_id: Optional[str] = Depends(get_session_id)
):
    session = request.app.state.sessions.pop(session_id, None) if session_id else None
    if session:
        session.discard()
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"status": "success"}


# --- Admin API ---
async def read_image(image: Optional[UploadFile]) -> Optional[ImageFile]:
    if image is None or not image.filename:
        return None
    return ImageFile(
        content=await image.read(),
        filename=image.filename,
        content_type=image.content_type or "application/octet-stream",
    )


def draft_from_form(
    category_id: str = Form(...),
    chapter_id: Optional[str] = Form(None),
    question_text: str = Form(...),
    question_type: str = Form("multiple-choice"),
    option_a: Optional[str] = Form(None),
    option_b: Optional[str] = Form(None),
    option_c: Optional[str] = Form(None),
    option_d: Optional[str] = Form(None),
    correct_answer: str = Form(...),
) -> dict:
    return dict(
        category_id=category_id,
        chapter_id=chapter_id,
        question_text=question_text,
        question_type=question_type,
        option_a=option_a,
        option_b=option_b,
        option_c=option_c,
        option_d=option_d,
        correct_answer=correct_answer,
    )


async def save_question(admin: AdminService, fields: dict, image: Optional[UploadFile], question_id=None):
    try:
        draft = QuestionDraft(**fields)
    except ValidationError as e:
        return error(f"Invalid question: {e.errors()[0]['msg']}", 400)
    try:
        upload = await read_image(image)
        if question_id is None:
            return await admin.create_question(draft, upload)
        return await admin.update_question(question_id, draft, upload)
    except ContentValidationError as e:
        return error(str(e), 400)
    except NotFoundError as e:
        return error(str(e), 404)
    except UploadError as e:
        logger.error(f"Question not saved, upload failed: {e}")
        return error(f"Image upload failed, please try again. ({e})", 502)


@router.get("/api/admin/questions")
async def admin_questions(
    category_id: str, chapter_id: Optional[str] = None, admin: AdminService = Depends(get_admin)
):
    return admin.list_questions(category_id, chapter_id or None)


@router.post("/api/admin/chapters")
async def create_chapter(
    category_id: str = Form(...),
    title: str = Form(...),
    chapter_number: str = Form(...),
    admin: AdminService = Depends(get_admin),
):
    try:
        return admin.create_chapter(category_id, title, chapter_number)
    except ContentValidationError as e:
        return error(str(e), 400)
    except NotFoundError as e:
        return error(str(e), 404)


@router.post("/api/admin/questions")
async def create_question(
    fields: dict = Depends(draft_from_form),
    image: Optional[UploadFile] = File(None),
    admin: AdminService = Depends(get_admin),
):
    return await save_question(admin, fields, image)


@router.put("/api/admin/questions/{question_id}")
async def update_question(
    question_id: str,
    fields: dict = Depends(draft_from_form),
    image: Optional[UploadFile] = File(None),
    admin: AdminService = Depends(get_admin),
):
    return await save_question(admin, fields, image, question_id)


@router.delete("/api/admin/questions/{question_id}")
async def delete_question(question_id: str, admin: AdminService = Depends(get_admin)):
    try:
        admin.delete_question(question_id)
    except NotFoundError as e:
        return error(str(e), 404)
    return {"status": "success"}
