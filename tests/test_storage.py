import pytest

from models import Policy
from storage import PolicySource, Storage, parse_policy, split_dirs


@pytest.fixture()
def storage(tmp_path):
    return Storage(str(tmp_path / "plots.db"))


def test_config_roundtrip_and_update(storage):
    assert storage.get_config("parallelism") is None
    assert storage.get_config("parallelism", default="1") == "1"
    storage.set_config("parallelism", 3)
    assert storage.get_config("parallelism") == "3"
    storage.set_config("parallelism", 4)
    assert [row["value"] for row in storage.all_config()] == ["4"]


def test_split_dirs_trims_and_drops_empty_entries():
    assert split_dirs(" /mnt/a, /mnt/b ,,") == ("/mnt/a", "/mnt/b")
    assert split_dirs("") == ()


def test_parse_policy_defaults():
    policy = parse_policy({})
    assert policy == Policy(parallelism=1, scratch_dirs=(), dest_dirs=())
    assert policy.plotter == "chia"
    assert policy.min_free_gib == 360
    assert not policy.ready


def test_parse_policy_values():
    policy = parse_policy({
        "parallelism": "4",
        "scratch_dirs": "/tmp1,/tmp2",
        "dest_dirs": "/farm1",
        "fingerprint": " 12345 ",
        "stagger_minutes": "30",
        "show_log": "Yes",
    })
    assert policy.parallelism == 4
    assert policy.scratch_dirs == ("/tmp1", "/tmp2")
    assert policy.dest_dirs == ("/farm1",)
    assert policy.fingerprint == "12345"
    assert policy.stagger_minutes == 30
    assert policy.show_log is True
    assert policy.ready


@pytest.mark.parametrize("key, value", [("parallelism", "many"), ("stagger_minutes", "-1")])
def test_parse_policy_rejects_bad_numbers(key, value):
    with pytest.raises(ValueError):
        parse_policy({key: value})


def test_policy_absent_until_configured(storage):
    source = PolicySource(storage)
    assert source.refresh() is None
    assert source.current_policy() is None

    storage.set_config("scratch_dirs", "/s0")
    policy = source.refresh()
    assert policy.scratch_dirs == ("/s0",)
    assert source.current_policy() is policy


def test_unrelated_keys_do_not_make_a_policy(storage):
    storage.set_config("theme", "dark")
    assert PolicySource(storage).refresh() is None


def test_refresh_picks_up_edits(storage):
    source = PolicySource(storage)
    storage.set_config("parallelism", "1")
    assert source.refresh().parallelism == 1
    storage.set_config("parallelism", "2")
    assert source.refresh().parallelism == 2


def test_bad_edit_keeps_last_good_policy(storage, capsys):
    source = PolicySource(storage)
    storage.set_config("parallelism", "2")
    good = source.refresh()

    storage.set_config("parallelism", "two")
    assert source.refresh() is good
    assert "Invalid policy config, keeping previous" in capsys.readouterr().out
