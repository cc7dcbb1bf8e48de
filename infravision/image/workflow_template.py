"""Fixed ControlNet workflow graph submitted to the graph-execution backend.

Graph shape (node id -> role):
    4  checkpoint load           -> model, clip, vae
    6  positive text encode      (text rewritten per request)
    7  negative text encode
    5  empty latent              (width/height rewritten per request)
    10 base image load           (image handle rewritten per request)
    11 structural-conditioning load
    12 structural-conditioning apply (strength rewritten per request)
    3  sampler                   (seed rewritten per request)
    8  VAE decode
    9  save image

Edges are `[source_node_id, output_index]` pairs. The topology never changes;
`workflow_builder.build_workflow` deep-copies this template and rewrites only the
request-specific inputs.
"""

CHECKPOINT_NODE = "4"
POSITIVE_TEXT_NODE = "6"
NEGATIVE_TEXT_NODE = "7"
LATENT_NODE = "5"
BASE_IMAGE_NODE = "10"
CONTROLNET_LOADER_NODE = "11"
CONTROLNET_APPLY_NODE = "12"
SAMPLER_NODE = "3"
DECODE_NODE = "8"
SAVE_NODE = "9"

WORKFLOW_TEMPLATE = {
    CHECKPOINT_NODE: {
        "inputs": {
            "ckpt_name": "juggernautXL_v9Rundiffusionphoto2.safetensors"
        },
        "class_type": "CheckpointLoaderSimple",
        "_meta": {"title": "Load Checkpoint"}
    },
    POSITIVE_TEXT_NODE: {
        "inputs": {
            "text": "",
            "clip": [CHECKPOINT_NODE, 1]
        },
        "class_type": "CLIPTextEncode",
        "_meta": {"title": "Positive Prompt"}
    },
    NEGATIVE_TEXT_NODE: {
        "inputs": {
            "text": "text, watermark, low quality, blurred, deformation, lowres",
            "clip": [CHECKPOINT_NODE, 1]
        },
        "class_type": "CLIPTextEncode",
        "_meta": {"title": "Negative Prompt"}
    },
    LATENT_NODE: {
        "inputs": {
            "width": 1280,
            "height": 720,
            "batch_size": 1
        },
        "class_type": "EmptyLatentImage",
        "_meta": {"title": "Empty Latent Image"}
    },
    BASE_IMAGE_NODE: {
        "inputs": {
            "image": "example.png",
            "upload": "image"
        },
        "class_type": "LoadImage",
        "_meta": {"title": "Load Base Image"}
    },
    CONTROLNET_LOADER_NODE: {
        "inputs": {
            "control_net_name": "Union_sdxl_promaxl.safetensors"
        },
        "class_type": "ControlNetLoader",
        "_meta": {"title": "Load ControlNet"}
    },
    CONTROLNET_APPLY_NODE: {
        "inputs": {
            "strength": 0.8,
            "start_percent": 0.0,
            "end_percent": 1.0,
            "positive": [POSITIVE_TEXT_NODE, 0],
            "negative": [NEGATIVE_TEXT_NODE, 0],
            "control_net": [CONTROLNET_LOADER_NODE, 0],
            "image": [BASE_IMAGE_NODE, 0]
        },
        "class_type": "ControlNetApplyAdvanced",
        "_meta": {"title": "Apply ControlNet"}
    },
    SAMPLER_NODE: {
        "inputs": {
            "seed": 0,
            "steps": 25,
            "cfg": 7,
            "sampler_name": "dpmpp_2m",
            "scheduler": "karras",
            "denoise": 1,
            "model": [CHECKPOINT_NODE, 0],
            "positive": [CONTROLNET_APPLY_NODE, 0],
            "negative": [CONTROLNET_APPLY_NODE, 1],
            "latent_image": [LATENT_NODE, 0]
        },
        "class_type": "KSampler",
        "_meta": {"title": "KSampler"}
    },
    DECODE_NODE: {
        "inputs": {
            "samples": [SAMPLER_NODE, 0],
            "vae": [CHECKPOINT_NODE, 2]
        },
        "class_type": "VAEDecode",
        "_meta": {"title": "VAE Decode"}
    },
    SAVE_NODE: {
        "inputs": {
            "filename_prefix": "Infravision",
            "images": [DECODE_NODE, 0]
        },
        "class_type": "SaveImage",
        "_meta": {"title": "Save Image"}
    }
}
