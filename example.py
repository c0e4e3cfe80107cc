import logging
from dataclasses import dataclass

import tinypoly
from tinypoly import tagged

AUTH_USER = "nofeaturesonlybugs"
AUTH_PASSWORD = "hunter2"


@dataclass
class EchoRequest:
    message: str = tagged("", json="message", form="message", path="message",
                          query="message")


@dataclass
class AuthLoginRequest:
    username: str = tagged("", form="username")
    password: str = tagged("", form="password")


@dataclass
class GreetPost:
    name: str = tagged("", json="name")


@dataclass
class Greet:
    my_name: str
    my_age: int

    def hello(self, post: GreetPost) -> str:
        return f"Hello {post.name}!  I am {self.my_name} and I am {self.my_age} years old."


def echo(post: EchoRequest) -> str:
    return post.message


def login(w: tinypoly.ResponseWriter, post: AuthLoginRequest):
    if post.username == AUTH_USER and post.password == AUTH_PASSWORD:
        w.set_status(200)
        return
    w.set_status(403)


def make_app() -> tinypoly.App:
    app = tinypoly.App()
    app.add_route("/echo/<message>", echo)
    app.add_route("/echo", echo, methods=["GET", "POST"])
    app.add_route("/login", login, methods=["POST"])
    app.add_route("/greet", Greet("Fred", 42).hello, methods=["POST"])
    return app


app = make_app()


def main():
    """Program entry point."""
    logging.basicConfig(level=logging.INFO)
    app.serve_forever()


if __name__ == "__main__":
    main()
