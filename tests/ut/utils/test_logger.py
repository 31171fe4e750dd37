"""日志配置测试"""

import io
import json
import logging
import sys

from assetmirror.utils.logger import JSONFormatter, reset_logging, setup_logging


class TestSetupLogging:
    def test_single_handler_after_repeat(self, isolated_logging: logging.Logger) -> None:
        setup_logging("DEBUG")
        setup_logging("WARNING")
        assert len(isolated_logging.handlers) == 1
        assert isolated_logging.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, isolated_logging: logging.Logger) -> None:
        setup_logging("verbose")
        assert isolated_logging.level == logging.INFO

    def test_text_output_has_thread_name(self, isolated_logging: logging.Logger) -> None:
        stream = io.StringIO()
        setup_logging("INFO", stream=stream)
        logging.getLogger("assetmirror.core.resolver").info("解析完成: %d", 3)
        line = stream.getvalue()
        assert "(MainThread) assetmirror.core.resolver: 解析完成: 3" in line
        assert "[INFO   ]" in line

    def test_json_output(self, isolated_logging: logging.Logger) -> None:
        stream = io.StringIO()
        handler = setup_logging("INFO", json_output=True, stream=stream)
        assert isinstance(handler.formatter, JSONFormatter)
        logging.getLogger("assetmirror.core.downloader").warning("下载失败: %s", "a.ls")
        out = json.loads(stream.getvalue())
        assert out["component"] == "core.downloader"
        assert out["message"] == "下载失败: a.ls"

    def test_reset_removes_handlers(self, isolated_logging: logging.Logger) -> None:
        setup_logging("INFO")
        reset_logging()
        assert isolated_logging.handlers == []


class TestJSONFormatter:
    def _record(self, msg: str, *args: object, exc_info: object = None) -> logging.LogRecord:
        return logging.LogRecord(
            name="assetmirror.core.resolver", level=logging.ERROR, pathname=__file__,
            lineno=1, msg=msg, args=args, exc_info=exc_info,
        )

    def test_fields(self) -> None:
        out = json.loads(JSONFormatter().format(self._record("下载失败: %s", "a.ls")))
        assert out["level"] == "ERROR"
        assert out["logger"] == "assetmirror.core.resolver"
        assert out["component"] == "core.resolver"
        assert out["message"] == "下载失败: a.ls"
        assert "timestamp" in out
        assert "thread" in out
        assert "exception" not in out

    def test_foreign_logger_name_kept(self) -> None:
        record = logging.LogRecord("urllib3", logging.INFO, __file__, 1, "x", (), None)
        assert json.loads(JSONFormatter().format(record))["component"] == "urllib3"

    def test_exception_included(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = self._record("出错", exc_info=sys.exc_info())
        out = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in out["exception"]
