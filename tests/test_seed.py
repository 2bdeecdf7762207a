from database import get_db
from seed import seed_if_empty


async def test_demo_data_is_usable(repo, engine):
    async with get_db() as db:
        await seed_if_empty(db)
        await seed_if_empty(db)

    assert len(await repo.list_assets_for_job(1)) == 3

    meters = {m.serial_number: m for m in await repo.list_meters()}
    anemometer = meters["TSI-9565-0412"]
    assert anemometer.active_calibration.id == 2
    assert not anemometer.expired
    assert meters["DWY-475-1187"].expired

    submission = await engine.create_submission(1, 1)
    result = await engine.instantiate(submission.id)
    assert result.created == 4
