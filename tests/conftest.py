import pytest
from unittest.mock import MagicMock

from locator_xray.core.engine import XRayEngine
from locator_xray.core.scheduler import VirtualScheduler
from locator_xray.layers.evaluation.models import Locator, XPathRecord
from locator_xray.layers.evaluation.xml_backend import LxmlBackend

ANDROID_XML = """<?xml version="1.0" encoding="UTF-8"?>
<hierarchy rotation="0">
  <android.widget.FrameLayout class="android.widget.FrameLayout" bounds="[0,0][1080,1920]">
    <android.widget.TextView class="android.widget.TextView" text="Welcome" resource-id="com.app:id/title" bounds="[10,20][50,60]"/>
    <android.widget.Button class="android.widget.Button" text="Sign in" resource-id="com.app:id/login" content-desc="Sign in button" bounds="[100,200][300,260]"/>
    <android.widget.Button class="android.widget.Button" text="Register" resource-id="com.app:id/register" bounds="[100,300][300,360]"/>
    <android.widget.Button class="android.widget.Button" text="Forgot password" resource-id="com.app:id/forgot" bounds="[100,400][300,460]"/>
    <android.widget.EditText class="android.widget.EditText" text="" resource-id="com.app:id/email" bounds="[100,500][980,560]"/>
  </android.widget.FrameLayout>
</hierarchy>
"""

IOS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<XCUIElementTypeApplication type="XCUIElementTypeApplication" name="Demo" x="0" y="0" width="390" height="844">
  <XCUIElementTypeStaticText type="XCUIElementTypeStaticText" name="title" label="Welcome" value="Welcome" x="20" y="40" width="200" height="30"/>
  <XCUIElementTypeButton type="XCUIElementTypeButton" name="login" label="Log In" x="20" y="100" width="350" height="44"/>
  <XCUIElementTypeOther type="XCUIElementTypeOther" name="spacer"/>
</XCUIElementTypeApplication>
"""


@pytest.fixture
def android_xml():
    return ANDROID_XML


@pytest.fixture
def ios_xml():
    return IOS_XML


@pytest.fixture
def scheduler():
    return VirtualScheduler()


@pytest.fixture
def backend():
    """Real lxml backend wrapped so tests can count calls."""
    return MagicMock(wraps=LxmlBackend())


@pytest.fixture
def engine(scheduler, backend):
    engine = XRayEngine(scheduler=scheduler, backend=backend)
    engine.set_context(ANDROID_XML, "login", "android")
    return engine


@pytest.fixture
def events(engine):
    """Every (event_type, event) delivered by the engine."""
    received = []
    engine.subscribe(lambda event_type, event: received.append((event_type, event)))
    return received


@pytest.fixture
def page():
    return {
        "id": "page-1",
        "states": [
            {
                "id": "login",
                "versions": {
                    "android": {"screenShot": "aGVsbG8=", "pageSource": ANDROID_XML},
                    "iOS": {"screenShot": "aGVsbG8=", "pageSource": IOS_XML},
                },
            },
            {"id": "empty", "versions": {}},
        ],
    }


def make_locator(
    dev_name="loginButton",
    expression="//*[@resource-id='com.app:id/login_old']",
    state_id="login",
    platform="android",
    success=True,
    matches=0,
    id=None,
    value="Sign in",
    name="Login button",
):
    return Locator(
        id=id,
        state_id=state_id,
        platform=platform,
        dev_name=dev_name,
        name=name,
        value=value,
        xpath=XPathRecord(
            expression=expression,
            number_of_matches=matches,
            is_valid=success,
            success=success,
        ),
    )


@pytest.fixture
def locator_factory():
    return make_locator
