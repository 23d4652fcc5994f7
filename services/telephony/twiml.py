"""
=====================================================
Call Transfer Relay - TwiML Documents
=====================================================
Call-control documents served to Twilio for the conference
bridge and the fallback announcement.
"""

from xml.sax.saxutils import escape as xml_escape


XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>'

# Spoken when the AI assistant cannot be reached for an inbound call
CONNECTION_ERROR_MESSAGE = "Connection error."


def _escape(value: str) -> str:
    # SECURITY: Escape all values to prevent XML injection attacks
    return xml_escape(value, {'"': '&quot;', "'": '&apos;'})


class ConferenceBridgeController:
    """
    Renders the TwiML that drops a leg into the shared conference room.

    The room starts when the first participant enters and ends for
    everyone as soon as any participant leaves.
    """

    def __init__(self, room_name: str = "interactive_cue_room"):
        self.room_name = room_name

    def render_bridge_instruction(self) -> str:
        return f'''{XML_HEADER}
<Response>
    <Dial>
        <Conference startConferenceOnEnter="true" endConferenceOnExit="true">{_escape(self.room_name)}</Conference>
    </Dial>
</Response>'''


class FallbackAnnouncer:
    """Renders the TwiML that apologizes to the customer and hangs up"""

    def __init__(self, message: str):
        self.message = message

    def render_fallback_instruction(self) -> str:
        return f'''{XML_HEADER}
<Response>
    <Say>{_escape(self.message)}</Say>
    <Hangup/>
</Response>'''


def render_error_instruction(message: str = CONNECTION_ERROR_MESSAGE) -> str:
    """TwiML spoken when the inbound call cannot be connected to the assistant"""
    return f'''{XML_HEADER}
<Response>
    <Say>{_escape(message)}</Say>
</Response>'''
