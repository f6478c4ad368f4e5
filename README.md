# flow

`flow` is a small web framework for WSGI. It keeps no global state and
builds an application from a few explicit parts:

- `flow.app.App`: configuration, one handler (the "router") and a
  middleware stack. An `App` is itself a WSGI callable and can also serve
  itself in a background thread.
- `flow.middleware`: request IDs, request logging, response timing,
  per-request deadlines and recovery from exceptions.
- `flow.context.Context`: a request-scoped helper for JSON, templates,
  redirects, form values, JSON bodies, sessions and flash messages.
- `flow.session`: sessions stored as JSON in an HMAC-SHA256 signed cookie.
- `flow.view.ViewManager`: Jinja2 templates found by name, with layouts,
  partials and shared templates, a cache and a development mode.
- `flow.controller`: a `Controller` base and a `Resource` protocol for
  RESTful actions.
- `flow.httpio`: the `Request`, `ResponseWriter` and `Cookie` types, the
  `error` and `redirect` helpers, and `wsgi_app`, which turns any handler
  into a WSGI application.

## Handlers

A handler is a callable `handler(writer, request)` taking a
`flow.httpio.ResponseWriter` and a `flow.httpio.Request`. A middleware is a
callable that takes a handler and returns a handler.

## A first application

```python
from wsgiref.simple_server import make_server

from flow.app import new, with_default_middleware, with_timeout
from flow.controller import Controller

app = new("hello", with_default_middleware(), with_timeout(2.0))
home = Controller(app)


def index(ctx):
    ctx.json(200, {"message": "hello"})


app.set_router(home.handler(index))

with make_server("", 3000, app) as server:
    server.serve_forever()
```

`new(name, *options)` creates an `App` and applies the options in order.
`Controller.handler` turns an action that takes a `Context` into a handler.
Without `set_router`, every request is answered with `404 page not found`.

The options are `with_logger`, `with_addr`, `with_shutdown_timeout`,
`with_views_default_layout`, `with_views_dev_mode`, `with_views_func_map`,
`with_logging`, `with_request_id`, `with_timeout`, `with_metrics`,
`with_default_middleware` and `with_db`. The logger defaults to
`logging.getLogger("flow")`; any object with `info` and `error` methods in
the `logging` style will do.

## Middleware

Middleware runs in the order it is registered, the first one outer-most:

```python
from flow.middleware import metrics_middleware, request_id_middleware

app.use(request_id_middleware(""))   # "X-Request-ID" by default
app.use(metrics_middleware())        # sets X-Response-Time, e.g. "3ms"
```

- `request_id_middleware(header_name)` keeps the incoming ID or generates a
  UUID, puts it on the request and echoes it on the response.
- `logging_middleware(logger)` logs the start and completion of each request.
- `metrics_middleware()` sets `X-Response-Time` in whole milliseconds.
- `timeout_middleware(seconds)` gives each request a deadline; zero or less
  disables it. The handler is not interrupted: it observes the deadline
  through `request.done()` or `request.wait_done(timeout)`.
- `recovery(logger)` logs an exception raised by a handler and answers
  `500 Internal Server Error`.

`with_default_middleware()` registers recovery, request ID, logging and
metrics, in that order.

## Context

`Context(app, writer, request)` offers:

- `json(status, value)`: JSON body with `application/json; charset=utf-8`
  (status 0 means 200);
- `render(name, data)` and `render_template(template_set, name, data)`;
- `redirect(url, code)`: relative URLs are resolved against the request
  path; code 0 means 302;
- `bind_json()`: returns the first JSON value of the body, raising
  `ValueError` when there is none or it is malformed;
- `form_value(key)`: URL-encoded body values first, then the query string;
- `error(status, msg)`: plain-text response (status 0 means 500);
- `set_header`, `status`, `params` and `param`;
- `session()`, `add_flash(kind, msg)` and `flashes()`.

## Sessions and flash messages

An `App` holds a `SessionManager` in `app.sessions`, but sessions reach
requests only once its middleware is installed:

```python
app.use(app.sessions.middleware())


def save(ctx):
    ctx.session().set("user", "alice")
    ctx.add_flash("notice", "Saved")
    ctx.redirect("/", 0)


def show(ctx):
    for entry in ctx.flashes():       # returned once, then cleared
        print(entry.kind, entry.msg)
```

Every `set` and `delete` writes the `flow_session` cookie again (path `/`,
HttpOnly, max age one day by default). A cookie that is malformed or whose
signature does not match is ignored and the session starts empty.
`default_session_manager()` uses a random secret, fine for development; for
anything else build `SessionManager(secret, cookie_name, max_age)` with a
fixed secret. Without the session middleware, the flash helpers raise
`RuntimeError`.

## Views

Templates are Jinja2 files under a directory, `views` by default, named by
their path without `.html`: `users/show` is `views/users/show.html`. Before
the view itself the manager loads the default layout if one is set and the
file exists, or otherwise every `layouts/*.html`, then `partials/*.html` and
`shared/*.html`, each directory in sorted order.

The blocks of all those files form one set in which later files win. A
render executes the `content` block if there is one, otherwise the whole
view file. Other blocks can be pulled in with `{{ self.name() }}`. The data
passed to `render` is available as `data`, and the keys of a mapping also
as variables of their own.

```html
{# views/users/show.html #}
{% block content %}User: {{ shout(name) }}{% endblock %}
```

```python
from flow.app import new, with_views_func_map

app = new("site", with_views_func_map({"shout": lambda s: s.upper()}))


def show(ctx):
    ctx.render("users/show", {"name": "alice"})
```

Parsed templates are cached per view. `set_default_layout` and
`set_func_map` clear the cache; with `set_dev_mode(True)` every render
parses the files again. A missing view or a template error raises
`flow.view.ViewError`.

## Controllers and resources

Subclass `Controller` to share the `App` between actions;
`Controller.render(ctx, name, data)` renders through the app's views.
`Resource` is a runtime-checkable protocol for the actions `index`, `new`,
`create`, `show`, `edit`, `update` and `destroy`, each taking a `Context`.

## Running and stopping

Besides hosting `app` in any WSGI server, `App.start()` serves it from a
background thread on `App.addr` (`":3000"` unless `with_addr` says
otherwise). `App.run(stop)` serves until the `threading.Event` `stop` is set
or SIGINT/SIGTERM arrives, then calls `App.shutdown`, which raises
`TimeoutError` if the server does not stop within the shutdown timeout
(10 seconds by default). Starting an app a second time raises
`AppAlreadyRunningError`.

## What flow does not do

- There is no URL router. `App.set_router` takes a single handler, and
  nothing maps paths or methods onto `Resource` actions; `Context.params`
  only reads parameters that some other handler placed on the request.
- There is no database layer. `with_db(db)` and `App.set_db(db)` simply
  keep a connection object on the app (read back through `App.db`), and
  `flow.app.Model` is a plain dataclass of `id`, `created_at`, `updated_at`
  and `deleted_at`; there are no migrations, queries or transactions.