from __future__ import annotations

from pathlib import Path

import pytest

from chatgate import cli
from chatgate.core.db.session import create_engine_for_url
from chatgate.core.domain import TenantType
from chatgate.store.tenants import PersonaSelector, TenantResolver

pytestmark = pytest.mark.unit


def test_seed_creates_demo_tenants_once(tmp_path: Path, capsys) -> None:
    url = f"sqlite:///{tmp_path / 'seed.db'}"

    assert cli.main(["seed", "--database-url", url]) == 0
    assert cli.main(["seed", "--database-url", url]) == 0

    output = capsys.readouterr().out
    assert "seeded 2 tenant(s)" in output
    assert "= bella-italia already present" in output
    assert "seeded 0 tenant(s)" in output

    engine = create_engine_for_url(url)
    try:
        eldercare = TenantResolver(engine).resolve("sunrise-eldercare")
        rose = PersonaSelector(engine).select(eldercare, "rose")
    finally:
        engine.dispose()

    assert eldercare.tenant_type is TenantType.ELDERCARE
    assert rose.name == "Rose"
    assert rose.persona_key == "rose"


def test_chat_requires_tenant() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["chat"])
