"""
Result helpers shared by the test modules.
"""

from kungfu import Error, Ok


def ok_value(result):
    """Value inside Ok, failing the test on Error."""
    match result:
        case Ok(value):
            return value
        case Error(e):
            raise AssertionError(f"expected Ok, got Error({e!r})")


def error_value(result):
    """Error inside Error, failing the test on Ok."""
    match result:
        case Error(e):
            return e
        case Ok(value):
            raise AssertionError(f"expected Error, got Ok({value!r})")
