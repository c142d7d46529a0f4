"""JSON HTTP API over the tool layer, served by uvicorn."""

from __future__ import annotations

import logging
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from skillshare.config import settings
from skillshare.core.errors import SkillshareError
from skillshare.tools import audit as audit_tools
from skillshare.tools import install as install_tools
from skillshare.tools import maintenance, skills, system, targets
from skillshare.tools import sync as sync_tools

logger = logging.getLogger("skillshare.api")


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TargetCreateRequest(_Body):
    name: str
    path: str
    mode: str = ""
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)


class TargetUpdateRequest(_Body):
    mode: str | None = None
    include: list[str] | None = None
    exclude: list[str] | None = None


class SyncRequest(_Body):
    dry_run: bool = False
    force: bool = False
    target: str | None = None


class CollectSelection(_Body):
    name: str
    target_name: str


class CollectRequest(_Body):
    skills: list[CollectSelection]
    force: bool = False


class BackupRequest(_Body):
    target: str | None = None


class RestoreRequest(_Body):
    timestamp: str
    target: str
    force: bool = False


class TrashRestoreRequest(_Body):
    force: bool = False


class DiscoverRequest(_Body):
    source: str


class InstallRequest(_Body):
    source: str
    name: str | None = None
    force: bool = False
    skip_audit: bool = False
    track: bool = False
    into: str = ""


class BatchSkill(_Body):
    name: str
    path: str = "."


class BatchInstallRequest(_Body):
    source: str
    skills: list[BatchSkill]
    force: bool = False
    skip_audit: bool = False
    into: str = ""


class UpdateRequest(_Body):
    name: str | None = None
    all: bool = False
    force: bool = False
    skip_audit: bool = False


class PushRequest(_Body):
    message: str = ""
    dry_run: bool = False


class PullRequest(_Body):
    dry_run: bool = False


class RawRequest(_Body):
    raw: str


def create_app() -> FastAPI:
    app = FastAPI(title="skillshare", version="0.1.0")

    @app.exception_handler(SkillshareError)
    async def skillshare_error(request: Request, exc: SkillshareError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    # -- inventory -----------------------------------------------------------

    @app.get("/api/overview")
    def api_overview() -> dict[str, Any]:
        return skills.overview()

    @app.get("/api/skills")
    def api_skills() -> dict[str, Any]:
        return skills.list_skills()

    @app.get("/api/skills/{name}")
    def api_skill(name: str) -> dict[str, Any]:
        return skills.get_skill(name)

    @app.delete("/api/skills/{name}")
    def api_skill_delete(name: str) -> dict[str, Any]:
        return skills.delete_skill(name)

    @app.get("/api/skills/{name}/files/{filepath:path}")
    def api_skill_file(name: str, filepath: str) -> dict[str, Any]:
        return skills.get_skill_file(name, filepath)

    @app.delete("/api/repos/{name}")
    def api_repo_delete(name: str) -> dict[str, Any]:
        return skills.uninstall_repo(name)

    # -- targets -------------------------------------------------------------

    @app.get("/api/targets")
    def api_targets() -> dict[str, Any]:
        return targets.list_targets()

    @app.get("/api/targets/available")
    def api_targets_available() -> dict[str, Any]:
        return targets.available_targets()

    @app.post("/api/targets")
    def api_target_add(req: TargetCreateRequest) -> dict[str, Any]:
        return targets.add_target(req.name, req.path, mode=req.mode, include=req.include, exclude=req.exclude)

    @app.patch("/api/targets/{name}")
    def api_target_update(name: str, req: TargetUpdateRequest) -> dict[str, Any]:
        return targets.update_target(name, include=req.include, exclude=req.exclude, mode=req.mode)

    @app.delete("/api/targets/{name}")
    def api_target_remove(name: str) -> dict[str, Any]:
        return targets.remove_target(name)

    # -- sync ----------------------------------------------------------------

    @app.post("/api/sync")
    def api_sync(req: SyncRequest | None = None) -> dict[str, Any]:
        req = req or SyncRequest()
        return sync_tools.sync(dry_run=req.dry_run, force=req.force, target=req.target)

    @app.get("/api/diff")
    def api_diff(target: str | None = None) -> dict[str, Any]:
        return sync_tools.diff(target)

    @app.get("/api/collect/scan")
    def api_collect_scan(target: str | None = None) -> dict[str, Any]:
        return sync_tools.collect_scan(target)

    @app.post("/api/collect")
    def api_collect(req: CollectRequest) -> dict[str, Any]:
        selections = [{"name": s.name, "targetName": s.target_name} for s in req.skills]
        return sync_tools.collect(selections, force=req.force)

    # -- backup & trash ------------------------------------------------------

    @app.get("/api/backups")
    def api_backups() -> dict[str, Any]:
        return maintenance.list_backups()

    @app.post("/api/backup")
    def api_backup(req: BackupRequest | None = None) -> dict[str, Any]:
        req = req or BackupRequest()
        return maintenance.create_backup(req.target)

    @app.post("/api/backup/cleanup")
    def api_backup_cleanup() -> dict[str, Any]:
        return maintenance.cleanup_backups()

    @app.post("/api/restore")
    def api_restore(req: RestoreRequest) -> dict[str, Any]:
        return maintenance.restore(req.timestamp, req.target, force=req.force)

    @app.get("/api/trash")
    def api_trash() -> dict[str, Any]:
        return maintenance.list_trash()

    @app.post("/api/trash/empty")
    def api_trash_empty() -> dict[str, Any]:
        return maintenance.empty_trash()

    @app.post("/api/trash/{name}/restore")
    def api_trash_restore(name: str, req: TrashRestoreRequest | None = None) -> dict[str, Any]:
        req = req or TrashRestoreRequest()
        return maintenance.restore_trash(name, force=req.force)

    @app.delete("/api/trash/{name}")
    def api_trash_delete(name: str) -> dict[str, Any]:
        return maintenance.delete_trash(name)

    # -- install & audit -----------------------------------------------------

    @app.post("/api/discover")
    async def api_discover(req: DiscoverRequest) -> dict[str, Any]:
        return await install_tools.discover(req.source)

    @app.post("/api/install")
    async def api_install(req: InstallRequest) -> dict[str, Any]:
        return await install_tools.install(
            req.source, name=req.name, force=req.force, skip_audit=req.skip_audit,
            track=req.track, into=req.into,
        )

    @app.post("/api/install/batch")
    async def api_install_batch(req: BatchInstallRequest) -> dict[str, Any]:
        selected = [{"name": s.name, "path": s.path} for s in req.skills]
        return await install_tools.install_batch(
            req.source, selected, force=req.force, skip_audit=req.skip_audit, into=req.into,
        )

    @app.post("/api/update")
    async def api_update(req: UpdateRequest | None = None) -> dict[str, Any]:
        req = req or UpdateRequest()
        return await install_tools.update(
            name=req.name, update_all=req.all, force=req.force, skip_audit=req.skip_audit,
        )

    @app.get("/api/audit")
    def api_audit() -> dict[str, Any]:
        return audit_tools.audit_all()

    @app.get("/api/audit/rules")
    def api_audit_rules() -> dict[str, Any]:
        return audit_tools.get_rules()

    @app.put("/api/audit/rules")
    def api_audit_rules_put(req: RawRequest) -> dict[str, Any]:
        return audit_tools.put_rules(req.raw)

    @app.get("/api/audit/{name}")
    def api_audit_skill(name: str) -> dict[str, Any]:
        return audit_tools.audit_skill(name)

    @app.get("/api/hub/index")
    def api_hub_index() -> dict[str, Any]:
        return install_tools.hub_index()

    @app.get("/api/hub/search")
    async def api_hub_search(hub: str, q: str = "", limit: int = 20) -> dict[str, Any]:
        return await install_tools.search_hub(q, hub, limit=limit)

    # -- git, config, log ----------------------------------------------------

    @app.get("/api/git/status")
    def api_git_status() -> dict[str, Any]:
        return system.git_status()

    @app.post("/api/push")
    def api_push(req: PushRequest | None = None) -> dict[str, Any]:
        req = req or PushRequest()
        return system.push(message=req.message, dry_run=req.dry_run)

    @app.post("/api/pull")
    def api_pull(req: PullRequest | None = None) -> dict[str, Any]:
        req = req or PullRequest()
        return system.pull(dry_run=req.dry_run)

    @app.get("/api/config")
    def api_config() -> dict[str, Any]:
        return system.get_config()

    @app.put("/api/config")
    def api_config_put(req: RawRequest) -> dict[str, Any]:
        return system.put_config(req.raw)

    @app.get("/api/log")
    def api_log(type: str = "ops", limit: int = 100, cmd: str = "", status: str = "", since: str = "") -> dict[str, Any]:
        return system.get_log(type, limit=limit, cmd=cmd, status=status, since=since)

    @app.delete("/api/log")
    def api_log_clear(type: str = "ops") -> dict[str, Any]:
        return system.clear_log(type)

    return app


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(create_app(), host=settings.api_host, port=settings.api_port, log_level="info")


if __name__ == "__main__":
    main()
