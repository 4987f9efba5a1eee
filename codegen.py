"""
Implementation snippets the user pastes into their site.
"""
import json

GTM_PLACEHOLDER_ID = "GTM-XXXXXXX"


def gtm_head_snippet(gtm_id):
    return f"""<!-- Google Tag Manager -->
<script>(function(w,d,s,l,i){{w[l]=w[l]||[];w[l].push({{'gtm.start':
new Date().getTime(),event:'gtm.js'}});var f=d.getElementsByTagName(s)[0],
j=d.createElement(s),dl=l!='dataLayer'?'&l='+l:'';j.async=true;j.src=
'https://www.googletagmanager.com/gtm.js?id='+i+dl;f.parentNode.insertBefore(j,f);
}})(window,document,'script','dataLayer','{gtm_id}');</script>
<!-- End Google Tag Manager -->"""


def gtm_body_snippet(gtm_id):
    return f"""<!-- Google Tag Manager (noscript) -->
<noscript><iframe src="https://www.googletagmanager.com/ns.html?id={gtm_id}"
height="0" width="0" style="display:none;visibility:hidden"></iframe></noscript>
<!-- End Google Tag Manager (noscript) -->"""


def _escape_quotes(value):
    return str(value).replace("\\", "\\\\").replace("'", "\\'")


def event_snippet(event):
    """dataLayer push for one conversion event."""
    event_id = _escape_quotes(event.get("id") or event.get("name"))
    event_name = _escape_quotes(event.get("name") or event.get("id"))
    return f"""// Snippet for event: '{event_name}'
window.dataLayer = window.dataLayer || [];
window.dataLayer.push({{
  'event': '{event_id}'
}});"""


def data_layer_snippet():
    return """// Data Layer setup for the server-side container
window.dataLayer = window.dataLayer || [];

dataLayer.push({
  event: 'page_view',
  page_title: document.title,
  page_location: window.location.href,
  user_agent: navigator.userAgent
});"""


def server_side_snippet(container_id, domain=None):
    domain = domain or container_id
    return f"""<!-- Tag Mage Server-Side Container -->
<script>
(function() {{
  var stape = window.stape = window.stape || [];
  stape.push(['init', '{container_id}']);

  var script = document.createElement('script');
  script.async = true;
  script.src = 'https://{domain}/gtm.js';
  var firstScript = document.getElementsByTagName('script')[0];
  firstScript.parentNode.insertBefore(script, firstScript);
}})();
</script>"""


EXAMPLE_SERVER_SIDE_EVENTS = """// Example of firing custom events
// stape('event', 'event_name', { parameter1: 'value1' });

stape('event', 'purchase', {
  transaction_id: 'T_12345',
  value: 99.99,
  currency: 'BRL',
  items: [
    {
      item_id: 'SKU_12345',
      item_name: 'Example Product',
      price: 99.99,
      quantity: 1
    }
  ]
});

stape('event', 'lead', {
  value: 0,
  currency: 'BRL',
  content_name: 'Contact Form'
});"""


def server_side_events_snippet(events):
    if not events:
        return EXAMPLE_SERVER_SIDE_EVENTS

    blocks = []
    for event in events:
        event_name = event.get("name") or event.get("id")
        parameters = json.dumps(event.get("parameters") or {}, indent=2)
        description = event.get("description") or f"Event: {event_name}"
        blocks.append(f"// {description}\nstape('event', '{_escape_quotes(event_name)}', {parameters});")
    return "\n\n".join(blocks)


def tiktok_pixel_snippet(pixel_id):
    return f"""<script>
!function (w, d, t) {{
  w.TiktokAnalyticsObject=t;var ttq=w[t]=w[t]||[];ttq.methods=["page","track","identify","instances","debug","on","off","once","ready","alias","group","enableCookie","disableCookie"];
  ttq.setAndDefer=function(t,e){{t[e]=function(){{t.push([e].concat(Array.prototype.slice.call(arguments,0)))}}}};
  for(var i=0;i<ttq.methods.length;i++)ttq.setAndDefer(ttq,ttq.methods[i]);
  ttq.load=function(e,n){{var i="https://analytics.tiktok.com/i18n/pixel/events.js";ttq._i=ttq._i||{{}},ttq._i[e]=[],ttq._i[e]._u=i,ttq._t=ttq._t||{{}},ttq._t[e]=+new Date,ttq._o=ttq._o||{{}},ttq._o[e]=n||{{}};
  var o=document.createElement("script");o.type="text/javascript",o.async=!0,o.src=i+"?sdkid="+e+"&lib="+t;
  var a=document.getElementsByTagName("script")[0];a.parentNode.insertBefore(o,a)}};
  ttq.load('{pixel_id}');
  ttq.page();
}}(window, document, 'ttq');
</script>"""


def linkedin_insight_snippet(partner_id):
    return f"""<script type="text/javascript">
_linkedin_partner_id = "{partner_id}";
window._linkedin_data_partner_ids = window._linkedin_data_partner_ids || [];
window._linkedin_data_partner_ids.push(_linkedin_partner_id);
</script>
<script type="text/javascript">
(function(l) {{
if (!l){{window.lintrk = function(a,b){{window.lintrk.q.push([a,b])}};
window.lintrk.q=[]}}
var s = document.getElementsByTagName("script")[0];
var b = document.createElement("script");
b.type = "text/javascript";b.async = true;
b.src = "https://snap.licdn.com/li.lms-analytics/insight.min.js";
s.parentNode.insertBefore(b, s);}})(window.lintrk);
</script>"""


def installation_instructions(gtm_id=None):
    """Chat-ready install text for the wizard's final step."""
    gtm_id = gtm_id or GTM_PLACEHOLDER_ID
    return (
        "Setup complete!\n\n"
        "Now install the script on your site. Paste the code below in the <head> of every page:\n\n"
        f"```html\n{gtm_head_snippet(gtm_id)}\n```\n\n"
        "And this one right after the opening <body> tag:\n\n"
        f"```html\n{gtm_body_snippet(gtm_id)}\n```\n\n"
        "Once installed, your tags start working automatically!"
    )


def project_code_bundle(project):
    """All snippets that apply to a project."""
    bundle = {"gtm": None, "events": [], "serverSide": None}
    events = project.conversion_events if isinstance(project.conversion_events, list) else []

    if project.gtm_id:
        bundle["gtm"] = {
            "head": gtm_head_snippet(project.gtm_id),
            "body": gtm_body_snippet(project.gtm_id),
        }
        bundle["events"] = [
            {"id": e.get("id") or e.get("name"), "name": e.get("name"), "code": event_snippet(e)}
            for e in events if e.get("id") or e.get("name")
        ]

    if project.stape_container_id:
        bundle["serverSide"] = {
            "snippet": server_side_snippet(project.stape_container_id, project.stape_domain),
            "events": server_side_events_snippet(events),
            "dataLayer": data_layer_snippet(),
        }

    return bundle
