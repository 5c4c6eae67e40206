import pytest

from hangouts.core.MessageTypes import ConversationParticipantData, ParticipantId
from hangouts.state import User, UserID, UserList
from shared.envelope import DecodeError

from protocol_fakes import make_entity


SELF_ID = UserID(chat_id="100", gaia_id="100")
OTHER_ID = UserID(chat_id="300", gaia_id="300")


def participant(pid, name):
    return ConversationParticipantData(id=ParticipantId(chat_id=pid, gaia_id=pid), fallback_name=name)


def test_create_splits_name_and_prefixes_photo():
    user = User.create(OTHER_ID, "Grace Brewster Hopper", photo_url="//lh3.example.com/p.jpg")

    assert user.name_components == ("Grace", "Brewster", "Hopper")
    assert user.full_name == "Grace Brewster Hopper"
    assert user.first_name == "Grace"
    assert user.photo_url == "https://lh3.example.com/p.jpg"
    assert not user.is_self


def test_missing_name_uses_default():
    user = User.create(OTHER_ID)

    assert user.full_name == User.DEFAULT_NAME
    assert user.photo_url is None


def test_from_entity_marks_self():
    entity = make_entity(emails=["ada@example.com", "ada@work.example"])

    me = User.from_entity(entity, None)
    other = User.from_entity(make_entity("300", "300", "Grace"), SELF_ID)

    assert me.is_self
    assert me.emails == ("ada@example.com", "ada@work.example")
    assert not other.is_self


def test_users_compare_by_id():
    assert User.create(OTHER_ID, "Grace") == User.create(OTHER_ID, "Amazing Grace")
    assert len({User.create(OTHER_ID, "a"), User.create(OTHER_ID, "b")}) == 1


def test_incomplete_participant_id_is_decode_error():
    with pytest.raises(DecodeError):
        UserID.from_participant_id(ParticipantId(chat_id="1"))
    with pytest.raises(DecodeError):
        UserID.from_participant_id(None)


def test_user_list_keeps_first_participant_sighting():
    users = UserList(User.from_entity(make_entity(), None))

    first = users.add_participant(participant("300", "Grace"))
    again = users.add_participant(participant("300", "Someone Else"))

    assert again is first
    assert users.get(OTHER_ID).full_name == "Grace"
    assert len(users) == 2


def test_user_list_entity_replaces_participant():
    users = UserList(User.from_entity(make_entity(), None))
    users.add_participant(participant("300", "Grace"))

    users.add_entity(make_entity("300", "300", "Grace Hopper", emails=[]))

    assert users.get(OTHER_ID).full_name == "Grace Hopper"


def test_user_list_lookup_and_sorting():
    users = UserList(User.from_entity(make_entity(), None))
    users.add_participant(participant("300", "zed"))
    users.add_participant(participant("400", "Bob"))

    assert SELF_ID in users
    assert users.get(UserID(chat_id="999", gaia_id="999")).full_name == User.DEFAULT_NAME
    assert [u.first_name for u in users.list_sorted()] == ["Ada", "Bob", "zed"]
