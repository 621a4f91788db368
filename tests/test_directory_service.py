from pathlib import Path
from unittest.mock import Mock

from sqlalchemy.exc import OperationalError

import hkdesk
from hkdesk.models import Ticket
from hkdesk.schemas.tools import ProfessionType
from hkdesk.services.directory_service import PersonDirectory, TicketRepository


class TestPersonDirectory:
    def test_filters_by_profession(self, people_file):
        people = PersonDirectory(people_file).find_by_type(ProfessionType.ELECTRICIAN)

        assert [p.name for p in people] == ["Yossi", "Dana"]
        assert all(p.type == ProfessionType.ELECTRICIAN for p in people)

    def test_no_match_returns_empty(self, people_file):
        assert PersonDirectory(people_file).find_by_type(ProfessionType.BLACKSMITH) == []

    def test_missing_file_returns_empty(self, tmp_path):
        assert PersonDirectory(tmp_path / "missing.json").find_by_type(ProfessionType.PLUMBER) == []

    def test_invalid_json_returns_empty(self, tmp_path):
        path = tmp_path / "people.json"
        path.write_text("{not json", encoding="utf-8")
        assert PersonDirectory(path).find_by_type(ProfessionType.PLUMBER) == []

    def test_unknown_profession_in_file_returns_empty(self, tmp_path):
        path = tmp_path / "people.json"
        path.write_text('[{"name": "X", "phone": "1", "type": "Astronaut"}]', encoding="utf-8")
        assert PersonDirectory(path).find_by_type(ProfessionType.PLUMBER) == []

    def test_bundled_directory_loads(self):
        people = PersonDirectory(Path(hkdesk.__file__).parent / "data" / "people.json").load()
        assert {p.type for p in people} == set(ProfessionType)


class TestTicketRepository:
    def test_create_opens_ticket(self, db_session):
        result = TicketRepository(db_session).create("Room 12: no power", "972500000001", "Electrician notified")

        assert result.ok
        ticket = result.value
        assert ticket.is_open is True
        assert ticket.id is not None
        assert db_session.query(Ticket).count() == 1

    def test_list_open_newest_first(self, db_session):
        repo = TicketRepository(db_session)
        older = repo.create("older", "1", "").value
        newer = repo.create("newer", "1", "").value
        closed = repo.create("closed", "1", "").value
        repo.update(str(closed.id), {"is_open": False})

        tickets = repo.list_open().value

        assert [t.id for t in tickets] == [newer.id, older.id]

    def test_update_only_changes_supplied_fields(self, db_session):
        repo = TicketRepository(db_session)
        ticket = repo.create("Room 3 sink", "972500000001", "Plumber notified").value

        result = repo.update(str(ticket.id), {"latest": "Plumber on the way"})

        assert result.ok
        db_session.refresh(ticket)
        assert ticket.latest == "Plumber on the way"
        assert ticket.description == "Room 3 sink"
        assert ticket.is_open is True

    def test_update_without_fields_is_rejected(self, db_session):
        db = Mock(wraps=db_session)
        result = TicketRepository(db).update("anything", {})

        assert result.ok is False
        assert result.error_code == "no_fields"
        db.commit.assert_not_called()

    def test_update_unknown_ticket(self, db_session):
        result = TicketRepository(db_session).update("00000000-0000-0000-0000-000000000000", {"is_open": False})
        assert result.error_code == "not_found"

    def test_update_malformed_id_is_not_found(self, db_session):
        assert TicketRepository(db_session).update("not-a-uuid", {"is_open": False}).error_code == "not_found"

    def test_list_open_backend_error(self):
        db = Mock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("db down"))

        result = TicketRepository(db).list_open()

        assert result.ok is False
        assert result.error_code == "db_error"
