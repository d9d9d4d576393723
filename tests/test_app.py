import pytest

from app import build_parser


def test_move_command_takes_many_ids():
    args = build_parser().parse_args(["move", "--stage", "hr_screen", "--actor", "ops@corp.com", "id-1", "id-2"])
    assert args.stage == "hr_screen"
    assert args.ids == ["id-1", "id-2"]


def test_ingest_defaults_to_batch_provenance():
    args = build_parser().parse_args(["ingest", "--file", "candidates.json"])
    assert args.provenance == "batch_upload"


def test_activity_paging_options():
    args = build_parser().parse_args(["activity", "--email", "asha@x.com", "--page", "2"])
    assert (args.email, args.page, args.limit) == ("asha@x.com", 2, 50)


def test_command_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
