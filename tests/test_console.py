import io
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from sixfs.console import BACKSPACE, INPUT_BUF, Console
from sixfs.errors import KernelPanic
from sixfs.keyboard import control


def make(procdump=None):
    out = io.StringIO()
    return Console(out, procdump), out


def test_putc_and_backspace():
    con, out = make()
    con.putc("a")
    con.putc(BACKSPACE)
    assert out.getvalue() == "a\b \b"


def test_line_is_echoed_and_read():
    con, out = make()
    con.interrupt("hi\n")
    assert out.getvalue() == "hi\n"
    assert con.read(10) == "hi\n"


def test_carriage_return_becomes_newline():
    con, out = make()
    con.interrupt("ok\r")
    assert con.read(10) == "ok\n"
    assert out.getvalue() == "ok\n"


def test_backspace_erases_last_char():
    con, out = make()
    con.interrupt("ab\x7f\n")
    assert con.read(10) == "a\n"
    assert out.getvalue() == "ab\b \b\n"


def test_kill_line():
    con, _ = make()
    con.interrupt("abc" + chr(control("U")) + "x\n")
    assert con.read(10) == "x\n"


def test_kill_line_stops_at_committed_input():
    con, _ = make()
    con.interrupt("a\nbc" + chr(control("U")) + "d\n")
    assert con.read(10) == "a\n"
    assert con.read(10) == "d\n"


def test_partial_reads():
    con, _ = make()
    con.interrupt("hello\n")
    first = con.read(2)
    rest = con.read(10)
    assert first == "he"
    assert first + rest == "hello\n"


def test_eof_after_data_is_kept_for_next_read():
    con, _ = make()
    con.interrupt("ab" + chr(control("D")))
    assert con.read(10) == "ab"
    assert con.read(10) == ""


def test_full_buffer_is_committed():
    con, _ = make()
    con.interrupt("a" * (INPUT_BUF + 5))
    assert con.read(INPUT_BUF) == "a" * INPUT_BUF


def test_control_p_calls_procdump():
    calls = []
    con, out = make(lambda: calls.append(True))
    con.interrupt(chr(control("P")))
    assert calls == [True]
    assert out.getvalue() == ""


def test_negative_code_stops_input():
    con, out = make()
    con.interrupt([ord("a"), -1, ord("b")])
    assert out.getvalue() == "a"


def test_write_returns_length():
    con, out = make()
    assert con.write(b"xyz") == 3
    assert out.getvalue() == "xyz"


def test_printf_formats():
    con, out = make()
    con.printf("%d %x %s", -5, 255, "ok")
    assert out.getvalue() == "-5 ff ok"


def test_printf_null_format_panics():
    con, _ = make()
    with pytest.raises(KernelPanic):
        con.printf(None)


def test_read_blocks_until_line_arrives():
    con, _ = make()
    with ThreadPoolExecutor(max_workers=1) as pool:
        pending = pool.submit(con.read, 20)
        time.sleep(0.1)
        assert pending.done() is False
        con.interrupt("late\n")
        assert pending.result(timeout=2) == "late\n"