"""异常体系与退出码单元测试"""

from __future__ import annotations

import pytest

from sliderule.core.exceptions import (
    AlreadyRemoteError,
    AmbiguousReferenceError,
    FetchFailedError,
    NameCollisionError,
    NotAssociatedWithRepositoryError,
    NotFoundError,
    PublishRejectedError,
    RepositoryCreationFailedError,
    RepositoryFault,
    SlideruleError,
    UnresolvedReferenceError,
)


class TestExitCodes:
    @pytest.mark.parametrize("exc_cls, code", [
        (NotAssociatedWithRepositoryError, 1),
        (NotFoundError, 10),
        (NameCollisionError, 11),
        (AlreadyRemoteError, 17),
        (UnresolvedReferenceError, 200),
        (AmbiguousReferenceError, 201),
        (PublishRejectedError, 202),
    ])
    def test_fixed_codes(self, exc_cls: type[SlideruleError], code: int) -> None:
        assert exc_cls("x").exit_code == code

    @pytest.mark.parametrize("fault", list(RepositoryFault))
    def test_repository_fault_is_exit_code(self, fault: RepositoryFault) -> None:
        assert FetchFailedError("x", fault=fault).exit_code == int(fault)

    def test_fault_values(self) -> None:
        assert [int(f) for f in RepositoryFault] == [100, 101, 102, 103]


class TestToDict:
    def test_carries_target(self) -> None:
        data = NotFoundError("组件不存在: gear", target="gear").to_dict()
        assert data == {"code": "NOT_FOUND", "exit_code": 10, "target": "gear", "message": "组件不存在: gear"}

    def test_repository_error_includes_fault(self) -> None:
        e = RepositoryCreationFailedError("boom", target="gear", fault=RepositoryFault.REMOTE_LOOKUP)
        assert e.to_dict()["fault"] == "REMOTE_LOOKUP"
        assert isinstance(e, SlideruleError)
