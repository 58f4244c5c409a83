"""
Runtime bridge document

Builds the HTML page returned by the wrapper endpoint. The page embeds the
packaged content in a sandboxed iframe and, once the frame loads, attaches an
LMS API object to it under ``API`` and ``API_1484_11``. The embedded script
follows the same rules as ``scorm_runtime.ScormRuntimeApi``: restore on
Initialize, debounced auto-commit, a final commit on Finish and a progress
relay posting ``SCORM_PROGRESS`` to the host page.
"""

import html
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlsplit

from scorm_bridge.utils.settings import DEFAULT_COMMIT_DELAY, DEFAULT_SAMPLE_INTERVAL
from scorm_bridge.services import cmi

SANDBOX = "allow-same-origin allow-scripts allow-forms allow-popups allow-modals"
STATIC_PREFIX = "/scorm"


@dataclass
class BridgeParams:
    content_id: str
    content_type: str
    learner_token: str
    content_url: str
    api_base_url: str
    learner_id: str = ""
    learner_name: Optional[str] = None
    commit_delay: float = DEFAULT_COMMIT_DELAY
    sample_interval: float = DEFAULT_SAMPLE_INTERVAL
    host_origins: List[str] = field(default_factory=list)


def content_url(base_url: str, relative_path: str, entry_point: str) -> str:
    """Public URL of the entry point under the static ``/scorm`` mount.

    ``relative_path`` is relative to the upload root, so its leading
    ``scorm/`` segment is what the mount already stands for. A query or
    fragment on the entry point is kept as is; only the path is quoted.
    """
    entry = urlsplit(entry_point)
    path = relative_path.strip("/")
    if path == "scorm":
        path = ""
    elif path.startswith("scorm/"):
        path = path[len("scorm/"):]
    parts = [p for p in (path, entry.path.lstrip("/")) if p]
    url = f"{base_url.rstrip('/')}{STATIC_PREFIX}/" + quote("/".join(parts))
    if entry.query:
        url += "?" + entry.query
    if entry.fragment:
        url += "#" + entry.fragment
    return url


def runtime_config(params: BridgeParams) -> Dict[str, Any]:
    defaults = dict(cmi.DEFAULT_VALUES)
    defaults["cmi.core.student_id"] = params.learner_id
    if params.learner_name:
        defaults["cmi.core.student_name"] = params.learner_name
    return {
        "contentId": params.content_id,
        "contentType": params.content_type,
        "token": params.learner_token,
        "apiBaseUrl": params.api_base_url.rstrip("/"),
        "commitDelayMs": int(params.commit_delay * 1000),
        "sampleIntervalMs": int(params.sample_interval * 1000),
        "defaults": defaults,
        "readOnly": sorted(cmi.READ_ONLY_ELEMENTS),
        "writeOnly": sorted(cmi.WRITE_ONLY_ELEMENTS),
        "aliases": cmi.ELEMENT_ALIASES,
        "errors": {str(code): text for code, text in cmi.ERROR_STRINGS.items()},
        "rules": cmi.value_rules(),
        "hostOrigins": list(params.host_origins),
    }


def _script_json(value: Any) -> str:
    # A literal "</" inside a <script> block would end it early
    return json.dumps(value).replace("</", "<\\/")


def render_bridge_document(params: BridgeParams) -> str:
    return _DOCUMENT.format(
        content_url=html.escape(params.content_url, quote=True),
        sandbox=SANDBOX,
        config=_script_json(runtime_config(params)),
        runtime=_RUNTIME_JS,
    )


_DOCUMENT = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>SCORM Content</title>
<style>
  * {{ margin: 0; padding: 0; box-sizing: border-box; }}
  html, body {{ width: 100%; height: 100%; overflow: hidden; }}
  #scorm-content {{ width: 100%; height: 100%; border: none; display: block; }}
</style>
</head>
<body>
<iframe id="scorm-content" src="{content_url}" sandbox="{sandbox}" allowfullscreen></iframe>
<script id="scorm-config" type="application/json">{config}</script>
<script>
{runtime}
</script>
</body>
</html>
"""

_RUNTIME_JS = r"""
(function () {
  'use strict';
  var config = JSON.parse(document.getElementById('scorm-config').textContent);
  var LESSON_STATUS = 'cmi.core.lesson_status';
  var SCORE_RAW = 'cmi.core.score.raw';
  var TOTAL_TIME = 'cmi.core.total_time';
  var SUSPEND_DATA = 'cmi.suspend_data';
  var ENTRY = 'cmi.core.entry';
  var EXIT = 'cmi.core.exit';
  var rules = config.rules;
  function has(obj, key) { return Object.prototype.hasOwnProperty.call(obj, key); }
  var progressUrl = config.apiBaseUrl + '/api/v1/scorm/' +
    encodeURIComponent(config.contentId) + '/progress';

  function ScormApi() {
    this.state = 'uninitialized';
    this.cmi = {};
    this.written = {};
    this.lastError = 0;
    this.diagnostic = '';
    this.hasUncommittedChanges = false;
    this.revision = 0;
    this.commitTimer = null;
  }

  ScormApi.prototype.setError = function (code, diagnostic) {
    this.lastError = code;
    this.diagnostic = diagnostic || '';
    return code === 0 ? 'true' : 'false';
  };

  ScormApi.prototype.canonical = function (element) {
    if (typeof element !== 'string' || !element.trim()) { return null; }
    element = element.trim();
    var known = rules.prefixes.some(function (prefix) { return element.indexOf(prefix) === 0; });
    if (!known) { return null; }
    return config.aliases[element] || element;
  };

  ScormApi.prototype.read = function (key) {
    if (has(this.cmi, key)) { return this.cmi[key]; }
    return has(config.defaults, key) ? config.defaults[key] : '';
  };

  ScormApi.prototype.valid = function (key, value) {
    if (has(rules.vocabularies, key)) { return rules.vocabularies[key].indexOf(value) !== -1; }
    if (has(rules.patterns, key)) { return new RegExp(rules.patterns[key]).test(value); }
    if (has(rules.maxLengths, key)) { return value.length <= rules.maxLengths[key]; }
    return true;
  };

  ScormApi.prototype.isKeyword = function (key) {
    return rules.keywords.indexOf(key.split('.').pop()) !== -1;
  };

  ScormApi.prototype.initialize = function () {
    if (this.state === 'initialized') { return this.setError(101, 'Already initialized'); }
    if (this.state === 'terminated') { return this.setError(101, 'Content instance terminated'); }
    this.state = 'initialized';
    this.restore();
    return this.setError(0);
  };

  ScormApi.prototype.getValue = function (element) {
    if (this.state !== 'initialized') { this.setError(301); return ''; }
    var key = this.canonical(element);
    if (key === null) { this.setError(201, 'Invalid element name'); return ''; }
    if (config.writeOnly.indexOf(key) !== -1) { this.setError(406, key + ' is write only'); return ''; }
    this.setError(0);
    return this.read(key);
  };

  ScormApi.prototype.setValue = function (element, value) {
    if (this.state !== 'initialized') { return this.setError(301); }
    var key = this.canonical(element);
    if (key === null) { return this.setError(201, 'Invalid element name'); }
    if (value === null || value === undefined) { return this.setError(201, 'Value is required'); }
    value = String(value);
    if (key === LESSON_STATUS && has(rules.statusMap, value)) { value = rules.statusMap[value]; }
    if (this.isKeyword(key)) { return this.setError(407, key + ' is a keyword'); }
    if (config.readOnly.indexOf(key) !== -1) { return this.setError(405, key + ' is read only'); }
    if (!this.valid(key, value)) { return this.setError(201, 'Invalid value for ' + key); }
    this.cmi[key] = value;
    this.written[key] = true;
    this.revision += 1;
    this.hasUncommittedChanges = true;
    this.scheduleCommit();
    return this.setError(0);
  };

  ScormApi.prototype.commit = function () {
    if (this.state !== 'initialized') { return this.setError(301); }
    this.cancelCommit();
    this.save();
    return this.setError(0);
  };

  // Host-side save; lastError stays whatever the content last caused
  ScormApi.prototype.flush = function () {
    if (this.state !== 'initialized') { return false; }
    this.cancelCommit();
    this.save();
    return true;
  };

  ScormApi.prototype.finish = function () {
    if (this.state !== 'initialized') { return this.setError(301); }
    this.cancelCommit();
    this.save();
    this.state = 'terminated';
    stopRelay();
    return this.setError(0);
  };

  ScormApi.prototype.getLastError = function () { return String(this.lastError); };

  ScormApi.prototype.getErrorString = function (code) {
    if (code === undefined || code === null || code === '') { code = this.lastError; }
    return config.errors[String(parseInt(code, 10))] || 'Unknown error';
  };

  ScormApi.prototype.getDiagnostic = function (code) {
    if (code === undefined || code === null || code === '' || String(code) === String(this.lastError)) {
      return this.diagnostic || this.getErrorString(this.lastError);
    }
    return this.getErrorString(code);
  };

  ScormApi.prototype.scheduleCommit = function () {
    var self = this;
    this.cancelCommit();
    this.commitTimer = setTimeout(function () {
      self.commitTimer = null;
      if (self.state === 'initialized' && self.hasUncommittedChanges) { self.commit(); }
    }, config.commitDelayMs);
  };

  ScormApi.prototype.cancelCommit = function () {
    if (this.commitTimer !== null) {
      clearTimeout(this.commitTimer);
      this.commitTimer = null;
    }
  };

  ScormApi.prototype.snapshot = function () {
    var raw = this.cmi[SCORE_RAW] || '';
    return {
      lessonStatus: this.cmi[LESSON_STATUS] || 'incomplete',
      score: raw ? parseFloat(raw) : null,
      scoreRaw: raw,
      timeSpent: this.cmi[TOTAL_TIME] || '00:00:00.00',
      suspendData: this.cmi[SUSPEND_DATA] || '',
      entry: this.cmi[ENTRY] || 'ab-initio',
      exit: this.cmi[EXIT] || 'normal'
    };
  };

  ScormApi.prototype.save = function () {
    var self = this;
    var revision = this.revision;
    return fetch(progressUrl, {
      method: 'POST',
      headers: { 'Content-Type': 'application/json', 'Authorization': 'Bearer ' + config.token },
      body: JSON.stringify({ contentType: config.contentType, progressData: this.snapshot() }),
      keepalive: true
    }).then(function (response) {
      if (!response.ok) { throw new Error('HTTP ' + response.status); }
      if (revision === self.revision) { self.hasUncommittedChanges = false; }
    }).catch(function (err) {
      console.warn('Failed to save SCORM progress:', err);
    });
  };

  ScormApi.prototype.restore = function () {
    var self = this;
    return fetch(progressUrl + '?contentType=' + encodeURIComponent(config.contentType), {
      headers: { 'Authorization': 'Bearer ' + config.token }
    }).then(function (response) {
      if (!response.ok) { throw new Error('HTTP ' + response.status); }
      return response.json();
    }).then(function (body) {
      var data = body && body.success ? body.data : null;
      if (!data) { return; }
      var restored = {};
      if (data.lessonStatus && data.lessonStatus !== 'not attempted') { restored[LESSON_STATUS] = data.lessonStatus; }
      var raw = data.scoreRaw || (data.score !== null && data.score !== undefined ? String(data.score) : '');
      if (raw) { restored[SCORE_RAW] = raw; }
      if (data.timeSpent) { restored[TOTAL_TIME] = data.timeSpent; }
      if (data.suspendData) {
        restored[SUSPEND_DATA] = data.suspendData;
        restored[ENTRY] = 'resume';
      }
      Object.keys(restored).forEach(function (key) {
        if (!self.written[key]) { self.cmi[key] = restored[key]; }
      });
    }).catch(function (err) {
      console.warn('Failed to load SCORM progress:', err);
    });
  };

  var api = new ScormApi();
  [
    ['LMSInitialize', 'initialize'], ['LMSFinish', 'finish'],
    ['LMSGetValue', 'getValue'], ['LMSSetValue', 'setValue'],
    ['LMSCommit', 'commit'], ['LMSGetLastError', 'getLastError'],
    ['LMSGetErrorString', 'getErrorString'], ['LMSGetDiagnostic', 'getDiagnostic'],
    ['Initialize', 'initialize'], ['Terminate', 'finish'],
    ['GetValue', 'getValue'], ['SetValue', 'setValue'],
    ['Commit', 'commit'], ['GetLastError', 'getLastError'],
    ['GetErrorString', 'getErrorString'], ['GetDiagnostic', 'getDiagnostic']
  ].forEach(function (pair) {
    api[pair[0]] = api[pair[1]].bind(api);
  });

  window.API = api;
  window.API_1484_11 = api;

  var relayTimer = null;
  var hostOrigin = null;
  try {
    hostOrigin = document.referrer ? new URL(document.referrer).origin : null;
  } catch (err) {
    hostOrigin = null;
  }
  function trustedOrigin(origin) {
    return !!origin && config.hostOrigins.indexOf(origin) !== -1;
  }
  function sample() {
    var status = api.read(LESSON_STATUS);
    var raw = api.read(SCORE_RAW);
    return {
      type: 'SCORM_PROGRESS',
      data: {
        status: status,
        score: raw ? parseFloat(raw) : null,
        timeSpent: api.read(TOTAL_TIME),
        isCompleted: status === 'completed' || status === 'passed'
      }
    };
  }
  function stopRelay() {
    if (relayTimer !== null) {
      clearInterval(relayTimer);
      relayTimer = null;
    }
  }
  function startRelay() {
    if (relayTimer !== null) { return; }
    relayTimer = setInterval(function () {
      if (api.state !== 'initialized' || !window.parent || window.parent === window) { return; }
      if (trustedOrigin(hostOrigin)) {
        window.parent.postMessage(sample(), hostOrigin);
      }
    }, config.sampleIntervalMs);
  }

  window.addEventListener('message', function (event) {
    if (event.source !== window.parent || !trustedOrigin(event.origin)) { return; }
    var message = event.data;
    if (!message || typeof message !== 'object') { return; }
    if (message.type === 'SCORM_SAVE') {
      api.flush();
    } else if (message.type === 'SCORM_FINISH') {
      if (api.flush()) { api.finish(); }
      stopRelay();
    }
  });

  var frame = document.getElementById('scorm-content');
  frame.addEventListener('load', function () {
    // Each navigation inside the frame gets a fresh window
    try {
      frame.contentWindow.API = api;
      frame.contentWindow.API_1484_11 = api;
    } catch (err) {
      console.warn('Could not attach SCORM API to content frame:', err);
    }
    startRelay();
  });
})();
"""
