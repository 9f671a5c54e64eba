import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from pymongo.errors import PyMongoError
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from database import DatabaseNotConnected, DocumentStore, connect_or_exit
from schemas import Comment, CommentCreate, Post, PostCreate, PostUpdate, SecretKeyBody, utcnow
from uploads import URL_PREFIX, UploadSink

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

FORM_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")
IMAGE_FIELD = "image"


# Helpers

def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid post id")


def _isoformat(value: datetime) -> str:
    # BSON datetimes come back naive, in UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def serialize(doc: dict) -> dict:
    """Shape a stored post for responses: string id, ISO dates, no secret key"""
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    doc.pop("secretKey", None)
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = _isoformat(v)
    doc["comments"] = [serialize_comment(c) for c in doc.get("comments") or []]
    return doc


def serialize_comment(comment: dict) -> dict:
    comment = dict(comment)
    if isinstance(comment.get("createdAt"), datetime):
        comment["createdAt"] = _isoformat(comment["createdAt"])
    return comment


def describe(exc: ValidationError) -> str:
    err = exc.errors()[0]
    field = ".".join(str(p) for p in err["loc"])
    if err["type"] == "missing":
        return f"{field} is required"
    ctx_error = (err.get("ctx") or {}).get("error")
    if ctx_error:
        return str(ctx_error)
    return f"{field}: {err['msg']}"


def load(model, fields: dict):
    """Normalize a raw body into its typed payload, or fail with 400"""
    try:
        return model.model_validate(fields)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=describe(e))


def authorize(post: dict, secret_key: Optional[str]):
    """The secret key given at creation is the only credential for update and delete"""
    if not secret_key or secret_key != post.get("secretKey"):
        logger.warning("Secret key mismatch for post %s", post.get("_id"))
        raise HTTPException(status_code=403, detail="Invalid secret key")


def find_post(store: DocumentStore, oid: ObjectId) -> dict:
    doc = store.posts.find_one({"_id": oid})
    if not doc:
        raise HTTPException(status_code=404, detail="Post not found")
    return doc


# Dependencies

class RequestBody:
    """Body fields (JSON or form) plus the optional uploaded image"""

    def __init__(self, fields: dict, image: Optional[UploadFile] = None):
        self.fields = fields
        self.image = image


async def read_body(request: Request) -> RequestBody:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_TYPES):
        form = await request.form()
        fields, image = {}, None
        for key in form.keys():
            values = form.getlist(key)
            if key == IMAGE_FIELD:
                files = [v for v in values if isinstance(v, UploadFile) and v.filename]
                if len(files) > 1:
                    raise HTTPException(status_code=400, detail="Only one image may be uploaded")
                image = files[0] if files else None
            elif key == "tags" and len(values) > 1:
                fields[key] = values
            else:
                fields[key] = values[-1]
        return RequestBody(fields, image)

    raw = await request.body()
    if not raw.strip():
        return RequestBody({})
    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return RequestBody(data)


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_uploads(request: Request) -> UploadSink:
    return request.app.state.uploads


# API Endpoints

router = APIRouter(prefix="/api/posts", tags=["posts"])


@router.post("", status_code=201)
@router.post("/", status_code=201, include_in_schema=False)
def create_post(
    body: RequestBody = Depends(read_body),
    store: DocumentStore = Depends(get_store),
    uploads: UploadSink = Depends(get_uploads),
):
    """
    Create a post from a JSON or multipart body (optional `image` file).
    Returns the stored document; like every response, it omits secretKey.
    """
    payload = load(PostCreate, body.fields)
    local_path = uploads.save(body.image) if body.image else None
    now = utcnow()
    post = Post(**payload.model_dump(), localImagePath=local_path, createdAt=now, updatedAt=now)
    try:
        inserted_id = store.posts.insert_one(post.model_dump()).inserted_id
    except Exception:
        uploads.discard(local_path)
        raise
    logger.info("Created post %s", inserted_id)
    doc = store.posts.find_one({"_id": inserted_id})
    return {"success": True, "data": serialize(doc)}


@router.get("")
@router.get("/", include_in_schema=False)
def list_posts(store: DocumentStore = Depends(get_store)):
    cursor = store.posts.find({}).sort("createdAt", -1)
    return {"success": True, "data": [serialize(d) for d in cursor]}


@router.get("/{post_id}")
def get_post(post_id: str, store: DocumentStore = Depends(get_store)):
    doc = find_post(store, to_object_id(post_id))
    return {"success": True, "data": serialize(doc)}


@router.put("/{post_id}")
def update_post(
    post_id: str,
    body: RequestBody = Depends(read_body),
    store: DocumentStore = Depends(get_store),
    uploads: UploadSink = Depends(get_uploads),
):
    oid = to_object_id(post_id)
    current = find_post(store, oid)
    authorize(current, load(SecretKeyBody, body.fields).secretKey)
    payload = load(PostUpdate, body.fields)

    # Only fields sent by the caller are replaced
    changes = payload.model_dump(exclude_unset=True)
    changes["secretKey"] = payload.secretKey
    changes["updatedAt"] = utcnow()
    if body.image:
        changes["localImagePath"] = uploads.save(body.image)

    try:
        store.posts.update_one({"_id": oid}, {"$set": changes})
    except Exception:
        uploads.discard(changes.get("localImagePath"))
        raise
    if body.image:
        uploads.discard(current.get("localImagePath"))
    logger.info("Updated post %s (%s)", oid, ", ".join(sorted(changes)))

    doc = find_post(store, oid)
    return {"success": True, "data": serialize(doc)}


@router.delete("/{post_id}")
def delete_post(
    post_id: str,
    body: RequestBody = Depends(read_body),
    store: DocumentStore = Depends(get_store),
    uploads: UploadSink = Depends(get_uploads),
):
    oid = to_object_id(post_id)
    current = find_post(store, oid)
    authorize(current, load(SecretKeyBody, body.fields).secretKey)

    result = store.posts.delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Post not found")
    uploads.discard(current.get("localImagePath"))
    logger.info("Deleted post %s", oid)
    return {"success": True, "message": "Post deleted"}


@router.post("/{post_id}/upvote")
def upvote_post(post_id: str, store: DocumentStore = Depends(get_store)):
    oid = to_object_id(post_id)
    result = store.posts.update_one({"_id": oid}, {"$inc": {"upvotes": 1}})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Post not found")
    doc = find_post(store, oid)
    return {"success": True, "data": serialize(doc)}


@router.post("/{post_id}/comments", status_code=201)
def add_comment(
    post_id: str,
    body: RequestBody = Depends(read_body),
    store: DocumentStore = Depends(get_store),
):
    oid = to_object_id(post_id)
    payload = load(CommentCreate, body.fields)
    find_post(store, oid)

    comment = Comment(**payload.model_dump()).model_dump()
    result = store.posts.update_one({"_id": oid}, {"$push": {"comments": comment}})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Post not found")
    return {"success": True, "data": serialize_comment(comment)}


# Error envelope

def error_response(status_code: int, error: str, headers=None) -> JSONResponse:
    return JSONResponse({"success": False, "error": error}, status_code=status_code, headers=headers)


async def http_error(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


async def validation_error(request: Request, exc: RequestValidationError):
    err = exc.errors()[0]
    return error_response(400, f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}")


async def server_error(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return error_response(500, str(exc) or "Internal server error")


def create_app(store: Optional[DocumentStore] = None, upload_dir: Optional[str] = None) -> FastAPI:
    store = store or DocumentStore(settings.MONGO_URI, settings.DB_NAME)
    uploads = UploadSink(upload_dir or settings.UPLOAD_DIR)
    uploads.ensure_dir()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        connect_or_exit(store)
        yield
        store.close()

    app = FastAPI(title="TrailTalk API", lifespan=lifespan)
    app.state.store = store
    app.state.uploads = uploads

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_error)
    app.add_exception_handler(RequestValidationError, validation_error)
    app.add_exception_handler(PyMongoError, server_error)
    app.add_exception_handler(DatabaseNotConnected, server_error)
    app.add_exception_handler(Exception, server_error)

    app.include_router(router)
    app.mount(f"/{URL_PREFIX}", StaticFiles(directory=str(uploads.directory)), name="uploads")

    @app.get("/")
    def read_root():
        return {"message": "TrailTalk API running"}

    @app.get("/test")
    def test_database():
        response = {
            "backend": "Running",
            "database": "Not Connected",
            "database_name": store.name,
            "collections": [],
        }
        if store.connected:
            try:
                response["collections"] = store.db.list_collection_names()[:10]
                response["database"] = "Connected"
            except PyMongoError as e:
                response["database"] = f"Connected but Error: {str(e)[:50]}"
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
