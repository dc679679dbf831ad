"""
CertChain - Static page content

The single-page UI served at ``/``. It talks to the JSON API only.
"""

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>CertChain - Certificate Validator</title>
    <link rel="stylesheet" href="/style.css">
</head>
<body>
    <header>
        <h1>CertChain</h1>
        <p>Issue and verify certificates backed by a hash chain</p>
    </header>
    <main>
        <section class="card">
            <h2>Issue Certificate</h2>
            <form id="issueForm" enctype="multipart/form-data">
                <input type="hidden" name="action" value="issue">
                <label>Student name <input type="text" name="studentName" required></label>
                <label>Course <input type="text" name="course" required></label>
                <label>Issue date <input type="date" name="issueDate" required></label>
                <label>Certificate file (optional) <input type="file" name="certificateFile"></label>
                <button type="submit">Issue</button>
            </form>
            <div id="issueResult" class="result"></div>
        </section>
        <section class="card">
            <h2>Validate Certificate</h2>
            <form id="validateForm" enctype="multipart/form-data">
                <input type="hidden" name="action" value="validate">
                <label>Certificate ID <input type="text" name="certificateId"></label>
                <label>or hash <input type="text" name="hash"></label>
                <label>or certificate file <input type="file" name="certificateFile"></label>
                <button type="submit">Validate</button>
            </form>
            <div id="validateResult" class="result"></div>
        </section>
        <section class="card">
            <h2>Certificates</h2>
            <table>
                <thead><tr><th>ID</th><th>Student</th><th>Course</th><th>Date</th><th></th></tr></thead>
                <tbody id="certificateRows"></tbody>
            </table>
        </section>
        <section class="card">
            <h2>Chain</h2>
            <div id="chainStatus"></div>
            <ol id="chainBlocks" start="0"></ol>
        </section>
    </main>
    <script src="/script.js"></script>
</body>
</html>
"""

STYLE_CSS = """:root {
    --primary: #4f46e5;
    --success: #10b981;
    --error: #ef4444;
    --text: #1f2937;
    --muted: #6b7280;
}

body {
    font-family: system-ui, -apple-system, sans-serif;
    color: var(--text);
    background: #f3f4f6;
    margin: 0;
}

header {
    background: var(--primary);
    color: white;
    padding: 24px;
}

main {
    max-width: 960px;
    margin: 0 auto;
    padding: 16px;
}

.card {
    background: white;
    border-radius: 8px;
    padding: 16px 24px;
    margin-bottom: 16px;
    box-shadow: 0 1px 3px rgba(0, 0, 0, 0.1);
}

label {
    display: block;
    margin: 8px 0;
}

input[type="text"], input[type="date"] {
    width: 100%;
    padding: 6px;
}

button {
    background: var(--primary);
    color: white;
    border: none;
    border-radius: 4px;
    padding: 8px 16px;
    cursor: pointer;
}

.result.success { color: var(--success); }
.result.error { color: var(--error); }

table {
    width: 100%;
    border-collapse: collapse;
}

td, th {
    text-align: left;
    padding: 4px 8px;
    border-bottom: 1px solid #e5e7eb;
}

code {
    font-size: 0.8em;
    color: var(--muted);
    word-break: break-all;
}
"""

SCRIPT_JS = """async function postForm(form) {
    const response = await fetch('/', { method: 'POST', body: new FormData(form) });
    return response.json();
}

function showResult(element, ok, html) {
    element.className = 'result ' + (ok ? 'success' : 'error');
    element.innerHTML = html;
}

document.getElementById('issueForm').addEventListener('submit', async (event) => {
    event.preventDefault();
    const output = document.getElementById('issueResult');
    const result = await postForm(event.target);
    if (result.success) {
        showResult(output, true, 'Certificate issued successfully! ID ' + result.certificateId +
            ', block ' + result.blockIndex + '<br><code>' + result.hash + '</code>');
        event.target.reset();
        refresh();
    } else {
        showResult(output, false, result.error);
    }
});

document.getElementById('validateForm').addEventListener('submit', async (event) => {
    event.preventDefault();
    const output = document.getElementById('validateResult');
    const result = await postForm(event.target);
    if (result.success) {
        showResult(output, result.valid, result.message);
    } else {
        showResult(output, false, result.error);
    }
});

async function deleteCertificate(id) {
    if (!confirm('Delete certificate ' + id + '?')) {
        return;
    }
    const response = await fetch('/api/certificates/delete/' + id, { method: 'DELETE' });
    const result = await response.json();
    if (!result.success) {
        alert(result.error);
    }
    refresh();
}

async function loadCertificates() {
    const response = await fetch('/api/certificates');
    const certificates = await response.json();
    const rows = document.getElementById('certificateRows');
    rows.innerHTML = '';
    for (const cert of certificates) {
        const row = document.createElement('tr');
        const download = cert.filePath
            ? '<a href="/api/certificates/download/' + cert.id + '">Download</a> '
            : '';
        row.innerHTML = '<td>' + cert.id + '</td><td>' + cert.studentName + '</td><td>' +
            cert.course + '</td><td>' + cert.issueDate + '</td><td>' + download +
            '<button onclick="deleteCertificate(' + cert.id + ')">Delete</button></td>';
        rows.appendChild(row);
    }
}

async function loadChain() {
    const response = await fetch('/api/blockchain');
    const chain = await response.json();
    document.getElementById('chainStatus').textContent =
        chain.chainLength + ' blocks, strict validation ' + (chain.valid ? 'passed' : 'failed');
    const list = document.getElementById('chainBlocks');
    list.innerHTML = '';
    for (const block of chain.blocks) {
        const item = document.createElement('li');
        item.innerHTML = 'Block ' + block.index + ' ' + (block.valid ? '' : '(invalid) ') +
            '<code>' + block.currentHash + '</code>';
        list.appendChild(item);
    }
}

function refresh() {
    loadCertificates();
    loadChain();
}

refresh();
"""
