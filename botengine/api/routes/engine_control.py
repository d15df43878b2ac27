"""Engine control routes: start/stop and manual cycles."""
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from botengine.api.dependencies.services import get_engine
from botengine.errors import PersistenceError

router = APIRouter(prefix="/control", tags=["engine-control"])

@router.post("/start")
async def start_engine(engine=Depends(get_engine)):
    try:
        await engine.start()
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=f"Engine could not start: {e}")
    return {"status": "started", "message": "Engine started successfully"}

@router.post("/stop")
async def stop_engine(engine=Depends(get_engine)):
    await engine.stop()
    return {"status": "stopped", "message": "Engine stopped successfully"}

@router.post("/cycle/entry-exit")
async def run_entry_exit(engine=Depends(get_engine)):
    stats = await engine.run_entry_exit_cycle()
    return asdict(stats)

@router.post("/cycle/touch-monitor")
async def run_touch_monitor(engine=Depends(get_engine)):
    stats = await engine.run_touch_monitor_cycle()
    return asdict(stats)

@router.post("/statistics")
async def refresh_all_statistics(engine=Depends(get_engine)):
    done = await engine.update_all_bots_statistics()
    return {"bots_updated": done}

@router.post("/statistics/{bot_id}")
async def refresh_bot_statistics(bot_id: str, engine=Depends(get_engine)):
    stats = await engine.recompute_statistics(bot_id)
    return {"bot_id": bot_id, "statistics": stats.to_dict()}

__all__ = ["router"]
