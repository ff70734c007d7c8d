"""
Unit tests for the middleware request pipeline.
"""

import json

from lws.http import HTTPRequest, HTTPResponse, HTTPStatus, ResponseBuilder
from lws.middleware import MiddlewarePipeline


def make_request(path="/"):
    return HTTPRequest(method="GET", path=path, request_id=7)


class TestMiddlewarePipeline:
    """Tests for chaining handlers."""

    def test_empty_pipeline_is_404(self):
        """Test that an empty pipeline answers 404."""
        response = MiddlewarePipeline().callback()(make_request())

        assert response.status == HTTPStatus.NOT_FOUND
        assert json.loads(response.body) == {"error": "Not Found"}

    def test_first_added_runs_first(self):
        """Test that handlers run in the order added."""
        order = []

        def first(request, next):
            order.append("first in")
            response = next(request)
            order.append("first out")
            return response

        def second(request, next):
            order.append("second")
            return ResponseBuilder().text("ok").build()

        response = MiddlewarePipeline().use(first, second).callback()(make_request())

        assert response.body == b"ok"
        assert order == ["first in", "second", "first out"]

    def test_short_circuit(self):
        """Test a handler that answers without calling next."""
        calls = []

        def gate(request, next):
            return ResponseBuilder().status(HTTPStatus.FORBIDDEN).build()

        def never(request, next):
            calls.append(request)
            return next(request)

        response = MiddlewarePipeline().use(gate, never).callback()(make_request())

        assert response.status == HTTPStatus.FORBIDDEN
        assert calls == []

    def test_fall_through_to_404(self):
        """Test falling through every handler."""
        def passthrough(request, next):
            return next(request)

        response = MiddlewarePipeline().add(passthrough).callback()(make_request())

        assert response.status == HTTPStatus.NOT_FOUND

    def test_handler_error_becomes_500(self):
        """Test that handler errors become 500 responses."""
        errors = []

        def broken(request, next):
            raise RuntimeError("kaboom")

        pipeline = MiddlewarePipeline().use(broken)
        pipeline.on("error", lambda err, request: errors.append((err, request.request_id)))

        response = pipeline.callback()(make_request())

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert b"kaboom" not in response.body
        assert len(errors) == 1
        assert isinstance(errors[0][0], RuntimeError)
        assert errors[0][1] == 7

    def test_non_response_result_is_an_error(self):
        """Test a handler that returns no response."""
        errors = []
        pipeline = MiddlewarePipeline().use(lambda request, next: "text")
        pipeline.on("error", lambda err, request: errors.append(err))

        response = pipeline.callback()(make_request())

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert isinstance(errors[0], TypeError)

    def test_len_and_iter(self):
        """Test len() and iteration."""
        def a(request, next):
            return next(request)

        def b(request, next):
            return next(request)

        pipeline = MiddlewarePipeline().use(a, b)

        assert len(pipeline) == 2
        assert list(pipeline) == [a, b]

    def test_wrap_custom_terminal(self):
        """Test a custom terminal handler."""
        def terminal(request):
            return HTTPResponse(body=b"end")

        def upper(request, next):
            response = next(request)
            return response.set_body(response.body.upper())

        handler = MiddlewarePipeline().use(upper).wrap(terminal)

        assert handler(make_request()).body == b"END"
