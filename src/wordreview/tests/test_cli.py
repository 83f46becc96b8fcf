"""Tests for the command line import and export."""
import json
from pathlib import Path

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from wordreview.__main__ import main
from wordreview.models.learning_models import Scope
from wordreview.models.models import User, Vocabulary


def test_export_then_import(tmp_path: Path, db: Session, user: User, legacy_scope: Scope, make_word) -> None:
    """Test a legacy export loads into a user's vocabulary."""
    make_word("apple", legacy_scope, meaning="a round fruit")
    make_word("banana", legacy_scope)
    export_path = tmp_path / "vocabularies.json"

    assert main(["export", str(export_path)]) == 0

    exported = json.loads(export_path.read_text(encoding="utf-8"))
    assert list(exported) == ["apple", "banana"]
    assert exported["apple"]["definitions"] == [{"pos": "n.", "meaning": "a round fruit"}]

    assert main(["import", str(export_path), "--owner-id", str(user.id)]) == 0

    db.expire_all()
    imported = db.query(Vocabulary).filter(Vocabulary.owner_id == user.id).order_by(Vocabulary.word).all()
    assert [vocab.word for vocab in imported] == ["apple", "banana"]
    assert imported[0].created_at == exported["apple"]["timestamp"]


def test_import_missing_file(tmp_path: Path) -> None:
    assert main(["import", str(tmp_path / "missing.json")]) == 1


def test_import_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    assert main(["import", str(path)]) == 1


def test_import_invalid_records_rolls_back(tmp_path: Path, db: Session) -> None:
    path = tmp_path / "vocabularies.json"
    path.write_text(
        json.dumps(
            [
                {"word": "apple", "definitions": [{"pos": "n.", "meaning": "fruit"}]},
                {"word": "banana", "definitions": []},
            ]
        ),
        encoding="utf-8",
    )

    assert main(["import", str(path)]) == 1
    assert db.query(Vocabulary).count() == 0


def test_metrics_port_starts_exporter(tmp_path: Path, mocker) -> None:
    start_monitoring = mocker.patch("wordreview.__main__.start_monitoring")

    assert main(["--metrics-port", "9191", "export", str(tmp_path / "out.json")]) == 0

    start_monitoring.assert_called_once_with(9191)
    assert json.loads((tmp_path / "out.json").read_text(encoding="utf-8")) == {}


def test_migrate_legacy_data(db: Session, user: User, legacy_scope: Scope, make_word) -> None:
    make_word("apple", legacy_scope)

    assert main(["migrate", "--owner-id", str(user.id)]) == 0

    db.expire_all()
    assert db.query(Vocabulary).filter(Vocabulary.owner_id == user.id).count() == 1
    assert main(["migrate", "--owner-id", "999"]) == 1


def test_export_storage_failure_exits_with_error(tmp_path: Path, mocker) -> None:
    mocker.patch(
        "wordreview.services.vocabulary_service.VocabularyStore.export_vocabularies",
        side_effect=OperationalError("SELECT", {}, Exception("disk I/O error")),
    )

    assert main(["export", str(tmp_path / "out.json")]) == 1
    assert not (tmp_path / "out.json").exists()
