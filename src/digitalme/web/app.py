from __future__ import annotations

import tempfile
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

from fastapi import Body, FastAPI, File, Header, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, Response
from pydantic import BaseModel

from digitalme.application.services.export_service import ExportService
from digitalme.application.services.ingestion_service import IngestionService
from digitalme.application.services.project_service import ProjectService
from digitalme.application.services.resource_service import ResourceService
from digitalme.application.services.statistics_service import StatisticsService
from digitalme.application.services.user_service import UserService
from digitalme.core.config import AppPaths
from digitalme.core.errors import DigitalMeError
from digitalme.core.files import ensure_directory
from digitalme.domain.models.user import User
from digitalme.infrastructure.archive.store import FileStore
from digitalme.infrastructure.db.repos.resource_repo import ResourceRepo
from digitalme.infrastructure.db.repos.user_repo import UserRepo

SIP_UPLOAD_FIELD = "sipFile"
CUSTOM_FILTER_PREFIX = "cf."
ZIP_CONTENT_TYPES = {
    "application/zip",
    "application/x-zip-compressed",
    "application/octet-stream",
}


class RegisterUserRequest(BaseModel):
    username: str


class AdminRegisterUserRequest(BaseModel):
    username: str
    level: str = "producer"


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


def _http_error(exc: DigitalMeError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def create_app(paths: AppPaths) -> FastAPI:
    app = FastAPI(title="Digital Me", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    project_service = ProjectService(paths)
    project_service.init_project()
    file_store = FileStore(paths.filestore_dir)

    def get_resource_repo() -> ResourceRepo:
        return ResourceRepo(paths.db_path)

    def get_user_service() -> UserService:
        return UserService(UserRepo(paths.db_path))

    def get_ingestion_service() -> IngestionService:
        return IngestionService(resource_repo=get_resource_repo(), file_store=file_store)

    def get_export_service() -> ExportService:
        return ExportService(resource_repo=get_resource_repo(), file_store=file_store)

    def get_resource_service() -> ResourceService:
        return ResourceService(resource_repo=get_resource_repo(), file_store=file_store)

    def optional_user(user_id: str | None) -> User | None:
        if not user_id:
            return None
        return get_user_service().get(user_id)

    def require_user(user_id: str | None) -> User:
        user = optional_user(user_id)
        if user is None:
            raise HTTPException(status_code=401, detail="Unauthorized. Please log in.")
        return user

    def require_admin(user_id: str | None) -> User:
        user = require_user(user_id)
        if not user.is_admin:
            raise HTTPException(status_code=403, detail="FORBIDDEN: Admin access required.")
        return user

    @app.post("/api/init")
    def api_init() -> dict[str, Any]:
        result = project_service.init_project()
        return {
            "ok": True,
            "db_path": str(result.db_path),
            "paths_created": [str(p) for p in result.paths_created],
        }

    @app.post("/api/users", status_code=201)
    def api_register_user(req: RegisterUserRequest) -> dict[str, Any]:
        try:
            user = get_user_service().register(req.username, level="producer")
        except DigitalMeError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "user": _jsonable(user)}

    @app.post("/api/resources", status_code=201)
    async def api_ingest_resource(
        sip_file: UploadFile | None = File(default=None, alias=SIP_UPLOAD_FIELD),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        if sip_file is None:
            raise HTTPException(status_code=400, detail="no SIP file uploaded.")
        if sip_file.content_type and sip_file.content_type not in ZIP_CONTENT_TYPES:
            raise HTTPException(status_code=400, detail="invalid file type. Only ZIP files are allowed.")

        temp_path: Path | None = None
        try:
            ensure_directory(paths.uploads_dir)
            with tempfile.NamedTemporaryFile(
                delete=False,
                dir=paths.uploads_dir,
                prefix="temp-sip-",
                suffix=".zip",
            ) as tmp:
                temp_path = Path(tmp.name)
                tmp.write(await sip_file.read())

            user = require_user(x_user_id)
            resource = await run_in_threadpool(
                get_ingestion_service().ingest_bag,
                temp_path,
                user.id,
                user.level,
            )
        except DigitalMeError as exc:
            raise _http_error(exc) from exc
        finally:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
        return {"ok": True, "resource": _jsonable(resource)}

    @app.get("/api/resources")
    def api_resources(
        request: Request,
        resource_type: str | None = Query(default=None, alias="resourceType"),
        limit: int = Query(default=100, ge=1, le=100000),
    ) -> dict[str, Any]:
        try:
            resources = get_resource_service().list_resources(
                scope="public",
                resource_type=resource_type,
                custom_fields=_custom_filter_params(request),
                limit=limit,
            )
        except DigitalMeError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "count": len(resources), "resources": _jsonable(resources)}

    @app.get("/api/resources/profile")
    def api_profile_resources(
        request: Request,
        resource_type: str | None = Query(default=None, alias="resourceType"),
        limit: int = Query(default=100, ge=1, le=100000),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        user = require_user(x_user_id)
        try:
            resources = get_resource_service().list_resources(
                scope="profile",
                requesting_user_id=user.id,
                resource_type=resource_type,
                custom_fields=_custom_filter_params(request),
                limit=limit,
            )
        except DigitalMeError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "count": len(resources), "resources": _jsonable(resources)}

    @app.get("/api/admin/resources")
    def api_admin_resources(
        request: Request,
        resource_type: str | None = Query(default=None, alias="resourceType"),
        limit: int = Query(default=100, ge=1, le=100000),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        user = require_admin(x_user_id)
        try:
            resources = get_resource_service().list_resources(
                scope="admin",
                requesting_user_id=user.id,
                resource_type=resource_type,
                custom_fields=_custom_filter_params(request),
                limit=limit,
            )
        except DigitalMeError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "count": len(resources), "resources": _jsonable(resources)}

    @app.get("/api/admin/users")
    def api_admin_users(
        limit: int = Query(default=100, ge=1, le=100000),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        require_admin(x_user_id)
        users = get_user_service().list_users(limit=limit)
        return {"ok": True, "count": len(users), "users": _jsonable(users)}

    @app.post("/api/admin/users", status_code=201)
    def api_admin_register_user(
        req: AdminRegisterUserRequest,
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        require_admin(x_user_id)
        try:
            user = get_user_service().register(req.username, level=req.level)
        except DigitalMeError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "user": _jsonable(user)}

    @app.get("/api/admin/users/{user_id}")
    def api_admin_user_detail(user_id: str, x_user_id: str | None = Header(default=None)) -> dict[str, Any]:
        require_admin(x_user_id)
        user = get_user_service().get(user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found.")
        return {"ok": True, "user": _jsonable(user)}

    @app.put("/api/admin/users/{user_id}")
    def api_admin_user_update(
        user_id: str,
        changes: dict[str, Any] | None = Body(default=None),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        require_admin(x_user_id)
        if not changes:
            raise HTTPException(status_code=400, detail="No update data provided.")
        try:
            updated = get_user_service().update_user(user_id, changes)
        except DigitalMeError as exc:
            raise _http_error(exc) from exc
        if updated is None:
            raise HTTPException(status_code=404, detail="User not found or could not be updated.")
        return {"ok": True, "user": _jsonable(updated)}

    @app.delete("/api/admin/users/{user_id}")
    def api_admin_user_delete(user_id: str, x_user_id: str | None = Header(default=None)) -> dict[str, Any]:
        admin = require_admin(x_user_id)
        try:
            deleted = get_user_service().delete_user(user_id, admin.id)
        except DigitalMeError as exc:
            raise _http_error(exc) from exc
        if deleted is None:
            raise HTTPException(status_code=404, detail="User not found.")
        return {"ok": True, "message": "User deleted successfully.", "deletedUserId": deleted.id}

    @app.get("/api/admin/stats")
    def api_admin_stats(x_user_id: str | None = Header(default=None)) -> dict[str, Any]:
        require_admin(x_user_id)
        stats = StatisticsService(UserRepo(paths.db_path), get_resource_repo()).usage_statistics()
        return {"ok": True, "stats": _jsonable(stats)}

    @app.get("/api/resources/{resource_id}")
    def api_resource_detail(resource_id: str, x_user_id: str | None = Header(default=None)) -> dict[str, Any]:
        service = get_resource_service()
        resource = service.get_resource(resource_id)
        if resource is None:
            raise HTTPException(status_code=404, detail="Resource not found.")
        if not service.can_view(resource, optional_user(x_user_id)):
            raise HTTPException(
                status_code=403,
                detail="FORBIDDEN: You do not have permission to view this private resource.",
            )
        return {"ok": True, "resource": _jsonable(resource)}

    @app.get("/api/resources/{resource_id}/files/{storage_name}")
    def api_resource_file(
        resource_id: str,
        storage_name: str,
        x_user_id: str | None = Header(default=None),
    ) -> FileResponse:
        user = require_user(x_user_id)
        service = get_resource_service()
        resource = service.get_resource(resource_id)
        if resource is None:
            raise HTTPException(status_code=404, detail="Resource not found.")
        if not service.can_view(resource, user):
            raise HTTPException(
                status_code=403,
                detail="FORBIDDEN: You do not have permission to access files of this private resource.",
            )
        details = service.get_file_details(resource_id, storage_name)
        if details is None or not details.file_path.exists():
            raise HTTPException(status_code=404, detail="File not found for this resource.")
        return FileResponse(
            path=str(details.file_path),
            media_type=details.mimetype,
            filename=details.original_name,
        )

    @app.put("/api/resources/{resource_id}")
    def api_resource_update(
        resource_id: str,
        changes: dict[str, Any] | None = Body(default=None),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        user = require_user(x_user_id)
        if not changes:
            raise HTTPException(status_code=400, detail="No update data provided.")
        try:
            updated = get_resource_service().update_resource(resource_id, changes, user.id, user.level)
        except DigitalMeError as exc:
            raise _http_error(exc) from exc
        if updated is None:
            raise HTTPException(status_code=404, detail="Resource not found or could not be updated.")
        return {"ok": True, "resource": _jsonable(updated)}

    @app.delete("/api/resources/{resource_id}")
    def api_resource_delete(resource_id: str, x_user_id: str | None = Header(default=None)) -> dict[str, Any]:
        user = require_user(x_user_id)
        try:
            result = get_resource_service().delete_resource(resource_id, user.id, user.level)
        except DigitalMeError as exc:
            raise _http_error(exc) from exc
        if result is None:
            raise HTTPException(status_code=404, detail="Resource not found.")
        return {"ok": True, "message": result.message, "deletedResourceId": result.resource_id}

    @app.get("/api/resources/{resource_id}/dip")
    def api_resource_dip(resource_id: str, x_user_id: str | None = Header(default=None)) -> Response:
        user = require_user(x_user_id)
        service = get_resource_service()
        resource = service.get_resource(resource_id)
        if resource is None:
            raise HTTPException(status_code=404, detail="Resource not found.")
        if not service.can_view(resource, user):
            raise HTTPException(
                status_code=403,
                detail="FORBIDDEN: You do not have permission to generate a DIP for this private resource.",
            )
        artifact = get_export_service().export_resource(resource_id)
        if artifact is None:
            raise HTTPException(status_code=404, detail="Resource not found.")
        return Response(
            content=artifact.data,
            media_type="application/zip",
            headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
        )

    return app


def _custom_filter_params(request: Request) -> dict[str, str]:
    return {
        key[len(CUSTOM_FILTER_PREFIX):]: value
        for key, value in request.query_params.items()
        if key.startswith(CUSTOM_FILTER_PREFIX) and len(key) > len(CUSTOM_FILTER_PREFIX)
    }
