"""
Context-aware escaping.

Each interpolation is escaped for the HTML context it lands in; a
SafeValue skips escaping only in the context it was vetted for.
"""

from render_api.app.services.sanitizer import sanitize
from render_api.app.services.template_engine import render

SCRIPT_PAYLOAD = "<script>alert(1)</script>"


# ---------------------------------------------------------------------------
# Element text
# ---------------------------------------------------------------------------

def test_plain_interpolation_escapes_markup():
    out = render("<p>{{.x}}</p>", {"x": SCRIPT_PAYLOAD})
    assert out == "<p>&lt;script&gt;alert(1)&lt;/script&gt;</p>"


def test_safe_html_renders_literally():
    out = render("<p>{{safeHTML .x}}</p>", {"x": SCRIPT_PAYLOAD})
    assert out == f"<p>{SCRIPT_PAYLOAD}</p>"


def test_quotes_and_ampersands_are_escaped_in_text():
    assert render("{{.x}}", {"x": "a & \"b\""}) == "a &amp; &#34;b&#34;"


def test_safe_value_for_other_context_is_escaped_in_text():
    assert render("{{safeURL .x}}", {"x": "<b>"}) == "&lt;b&gt;"
    assert render("{{safeCSS .x}}", {"x": "<b>"}) == "&lt;b&gt;"


def test_sanitized_url_in_text_is_escaped_like_a_string():
    out = render("{{.u}}", sanitize({"u": "https://x.test/?a=1&b=2"}))
    assert out == "https://x.test/?a=1&amp;b=2"


def test_rcdata_elements_escape_even_safe_html():
    assert render("<title>{{safeHTML .t}}</title>", {"t": "<b>"}) == "<title>&lt;b&gt;</title>"


def test_comment_content_is_dropped():
    assert render("a<!-- {{.x}} -->b", {"x": "secret"}) == "a<!--  -->b"


# ---------------------------------------------------------------------------
# Attributes
# ---------------------------------------------------------------------------

def test_quoted_attribute_value_is_escaped():
    out = render('<div title="{{.t}}"></div>', {"t": '"><script>'})
    assert out == '<div title="&#34;&gt;&lt;script&gt;"></div>'


def test_unquoted_attribute_value_encodes_whitespace():
    assert render("<input value={{.v}}>", {"v": "a b"}) == "<input value=a&#32;b>"


def test_attribute_name_position_rejects_event_handlers():
    template = '<div {{.attr}}="x"></div>'
    assert render(template, {"attr": "title"}) == '<div title="x"></div>'
    assert render(template, {"attr": "onclick"}) == '<div ZgotmplZ="x"></div>'


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------

def test_unsafe_scheme_is_filtered_in_url_attribute():
    out = render('<a href="{{.u}}">x</a>', {"u": "javascript:alert(1)"})
    assert out == '<a href="#ZgotmplZ">x</a>'


def test_http_url_passes_url_attribute():
    out = render('<a href="{{.u}}">x</a>', {"u": "https://example.com/?q=1"})
    assert out == '<a href="https://example.com/?q=1">x</a>'


def test_sanitized_url_is_normalized_and_attribute_escaped():
    data = sanitize({"u": "https://example.com/a b?x=1&y=2"})
    out = render('<a href="{{.u}}">x</a>', data)
    assert out == '<a href="https://example.com/a%20b?x=1&amp;y=2">x</a>'


def test_sanitized_data_uri_reaches_img_src():
    data = sanitize({"img": "data:image/png;base64,AAAA"})
    out = render('<img src="{{.img}}">', data)
    assert out == '<img src="data:image/png;base64,AAAA">'


def test_unsanitized_data_uri_is_filtered():
    out = render('<img src="{{.img}}">', {"img": "data:image/png;base64,AAAA"})
    assert out == '<img src="#ZgotmplZ">'


def test_safe_url_skips_scheme_filter():
    out = render('<a href="{{safeURL .u}}">x</a>', {"u": "javascript:void(0)"})
    assert out == '<a href="javascript:void%280%29">x</a>'


def test_query_part_is_fully_escaped():
    out = render('<a href="/search?q={{.q}}">x</a>', {"q": "a&b c"})
    assert out == '<a href="/search?q=a%26b%20c">x</a>'


# ---------------------------------------------------------------------------
# CSS and JavaScript
# ---------------------------------------------------------------------------

def test_style_attribute_value_is_css_escaped():
    out = render('<p style="color: {{.c}}"></p>', {"c": "red;x"})
    assert out == '<p style="color: red\\3b x"></p>'


def test_safe_css_in_style_element():
    template = "<style>p { color: {{.c}}; }</style>"
    assert render(template, {"c": "rgb(1,2,3)"}) == "<style>p { color: rgb\\28 1,2,3\\29 ; }</style>"
    assert render(template.replace(".c", "safeCSS .c"), {"c": "rgb(1,2,3)"}) == (
        "<style>p { color: rgb(1,2,3); }</style>"
    )


def test_script_context_emits_json_literals():
    template = "<script>var v = {{.v}};</script>"
    assert render(template, {"v": "</script>"}) == (
        '<script>var v = "\\u003c/script\\u003e";</script>'
    )
    assert render(template, {"v": {"a": 1}}) == '<script>var v = {"a": 1};</script>'


def test_safe_html_does_not_bypass_script_escaping():
    out = render("<script>{{safeHTML .x}}</script>", {"x": "</script>"})
    assert "</script></script>" not in out
    assert "\\u003c/script\\u003e" in out


# ---------------------------------------------------------------------------
# JavaScript string literals
# ---------------------------------------------------------------------------

def test_double_quoted_script_string_is_not_requoted():
    template = '<script>var s = "{{.x}}";</script>'

    assert render(template, {"x": "hi"}) == '<script>var s = "hi";</script>'
    assert render(template, {"x": 'a"b</script>'}) == (
        '<script>var s = "a\\u0022b\\u003c\\/script\\u003e";</script>'
    )


def test_single_quoted_script_string():
    out = render("<script>var s = '{{.x}}';</script>", {"x": "it's"})
    assert out == "<script>var s = 'it\\u0027s';</script>"


def test_template_literal_blocks_interpolation():
    out = render("<script>var s = `{{.x}}`;</script>", {"x": "${alert(1)}"})
    assert out == "<script>var s = `\\u0024{alert(1)}`;</script>"


def test_escaped_quote_keeps_string_open():
    template = '<script>var s = "say \\"{{.x}}\\"";</script>'
    assert render(template, {"x": "hi"}) == (
        '<script>var s = "say \\"hi\\"";</script>'
    )


def test_value_after_closed_string_is_json():
    template = '<script>var a = "x"; var b = {{.v}};</script>'
    assert render(template, {"v": "hi"}) == (
        '<script>var a = "x"; var b = "hi";</script>'
    )


def test_script_comment_drops_value():
    template = "<script>// {{.v}}\nvar b = {{.v}};</script>"
    assert render(template, {"v": "hi"}) == '<script>// \nvar b = "hi";</script>'


def test_event_handler_string_argument():
    template = "<button onclick=\"f('{{.x}}')\">go</button>"

    assert render(template, {"x": "hi"}) == (
        "<button onclick=\"f('hi')\">go</button>"
    )
    assert render(template, {"x": "x');alert(1);//"}) == (
        "<button onclick=\"f('x\\u0027);alert(1);\\/\\/')\">go</button>"
    )


def test_event_handler_double_quoted_string_inside_single_quoted_attribute():
    out = render("<a onclick='f(\"{{.x}}\")'>go</a>", {"x": 'a"b'})
    assert out == "<a onclick='f(\"a\\u0022b\")'>go</a>"


def test_event_handler_value_outside_string_is_json():
    out = render('<a onclick="f({{.x}})">go</a>', {"x": "hi"})
    assert out == '<a onclick="f(&#34;hi&#34;)">go</a>'
