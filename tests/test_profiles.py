import pytest
from pydantic import ValidationError

from app.core.errors import MalformedData, NotFound, ValidationFailed
from app.models.common import Location, Sport
from app.profiles.repository import USERS
from app.profiles.schemas import (
    DEFAULT_LOCATION,
    LocationUpdateModel,
    ProfileSetupModel,
    ProfileUpdateModel,
)
from tests.helpers import add_user, setup_for


@pytest.mark.asyncio
async def test_stub_profile_is_incomplete(services):
    stub = await services.profiles.create_stub_profile("p1", "  Pat Player ", "pat@example.com")

    assert stub.full_name == "Pat Player"
    assert stub.location == DEFAULT_LOCATION
    assert stub.preferred_sports == []
    assert not await services.profiles.is_profile_complete("p1")

    profile = await services.profiles.get_profile("p1")
    assert profile.first_name == "Pat"
    assert not profile.is_complete


@pytest.mark.asyncio
async def test_stub_profile_requires_name_and_email(services):
    with pytest.raises(ValidationFailed):
        await services.profiles.create_stub_profile("p1", " ", "pat@example.com")
    with pytest.raises(ValidationFailed):
        await services.profiles.create_stub_profile("p1", "Pat", "")


@pytest.mark.asyncio
async def test_complete_profile(services):
    await add_user(services, "p1", "Pat Player", complete=False)
    await services.profiles.complete_profile("p1", setup_for(Sport.tennis))

    assert await services.profiles.is_profile_complete("p1")
    profile = await services.profiles.get_profile("p1")
    assert profile.profile_complete
    assert profile.preferred_sports == [Sport.tennis]
    assert profile.location_name == "Tempe, AZ"


@pytest.mark.asyncio
async def test_whitespace_bio_is_not_complete(services, store):
    await add_user(services, "p1", "Pat Player", complete=False)
    await store.update_document(USERS, "p1", {"bio": "   ", "preferred_sports": ["tennis"]})
    assert not await services.profiles.is_profile_complete("p1")


def test_setup_rejects_empty_bio_and_sports():
    with pytest.raises(ValidationError):
        ProfileSetupModel(bio=" ", preferred_sports=[Sport.soccer], location=DEFAULT_LOCATION)
    with pytest.raises(ValidationError):
        ProfileSetupModel(bio="hi", preferred_sports=[], location=DEFAULT_LOCATION)

    setup = ProfileSetupModel(
        bio="hi", preferred_sports=[Sport.soccer, Sport.soccer, Sport.tennis], location=DEFAULT_LOCATION
    )
    assert setup.preferred_sports == [Sport.soccer, Sport.tennis]


@pytest.mark.asyncio
async def test_missing_profile(services):
    with pytest.raises(NotFound):
        await services.profiles.get_profile("ghost")
    with pytest.raises(NotFound):
        await services.profiles.is_profile_complete("ghost")


@pytest.mark.asyncio
async def test_malformed_profile(services, store):
    await store.set_document(USERS, "broken", {"full_name": "No Email", "preferred_sports": "tennis"})

    with pytest.raises(MalformedData) as exc:
        await services.profiles.get_profile("broken")
    assert exc.value.doc_id == "broken"
    assert "email" in exc.value.reason


@pytest.mark.asyncio
async def test_partial_update_leaves_other_fields(services):
    await add_user(services, "p1", "Pat Player")
    await services.profiles.update_profile("p1", ProfileUpdateModel(bio="Lefty"))

    profile = await services.profiles.get_profile("p1")
    assert profile.bio == "Lefty"
    assert profile.full_name == "Pat Player"
    assert profile.preferred_sports == [Sport.pickleball]


@pytest.mark.asyncio
async def test_rename_invalidates_name_cache(services):
    await add_user(services, "p1", "Pat Player")
    assert await services.profiles.display_name("p1") == "Pat Player"

    await services.profiles.update_profile("p1", ProfileUpdateModel(full_name="Patricia Player"))
    assert "p1" not in services.profiles.names
    assert await services.profiles.display_name("p1") == "Patricia Player"


@pytest.mark.asyncio
async def test_rename_to_blank_is_rejected(services):
    await add_user(services, "p1", "Pat Player")
    with pytest.raises(ValidationFailed):
        await services.profiles.update_profile("p1", ProfileUpdateModel(full_name="   "))


@pytest.mark.asyncio
async def test_update_location(services):
    await add_user(services, "p1", "Pat Player")
    await services.profiles.update_location(
        "p1", LocationUpdateModel(location=Location(lat=40.0, lng=-74.0), location_name="NYC")
    )

    profile = await services.profiles.get_profile("p1")
    assert profile.location == Location(lat=40.0, lng=-74.0)
    assert profile.location_name == "NYC"


@pytest.mark.asyncio
async def test_display_names_for_unknown_user(services):
    await add_user(services, "p1", "Pat Player")
    names = await services.profiles.display_names(["p1", "ghost", "p1"])
    assert names == {"p1": "Pat Player", "ghost": None}
    assert "ghost" not in services.profiles.names


@pytest.mark.asyncio
async def test_forget_session_on_missing_profile_is_quiet(services):
    await services.profiles.forget_session("ghost", "s1", hosted=True)
